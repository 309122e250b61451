"""Tests for profile writes and the stored insight snapshot."""

import pytest

from creator_match.errors import ConflictError, NotFoundError, PreconditionError, ValidationError
from creator_match.services.profiles import normalize_promotion_type, normalize_promotion_types


@pytest.mark.parametrize(
    "raw, token",
    [("Reels", "REELS"), ("Website Visit", "WEBSITE_VISIT"), ("website-visit", "WEBSITE_VISIT"), ("  posts ", "POSTS")],
)
def test_normalize_promotion_type(raw, token):
    assert normalize_promotion_type(raw) == token


def test_normalize_promotion_types_dedupes_and_keeps_order():
    assert normalize_promotion_types(["Stories", "Reels", "stories"]) == ["STORIES", "REELS"]
    assert normalize_promotion_types(None) == []


async def test_create_profile_stores_derived_snapshot(db, make_profile, event_sink):
    profile = await make_profile(user_id="u-1")

    assert profile.id is not None
    assert profile.promotion_types == ["REELS", "STORIES"]
    # 45K followers at 4% -> Medium engagement, High authenticity, +3 reach, +5 available
    assert profile.engagement_quality == "Medium"
    assert profile.audience_authenticity == "High"
    assert profile.insight_score == 83
    assert profile.strengths == [
        "Strong engagement",
        "Fashion niche expert",
        "Budget-friendly rates",
        "Currently available",
    ]
    assert profile.profile_summary.startswith("Micro-influencer in Fashion with 45.0K followers.")
    assert profile.last_analyzed is not None
    assert event_sink.names() == ["insights.updated"]
    assert event_sink.events[0][1]["score"] == 83


async def test_create_profile_completion(make_profile):
    profile = await make_profile()
    # category, types, price, availability + bio, followers, engagement
    assert profile.profile_completion_percentage == 64
    assert profile.onboarding_completed is True


async def test_duplicate_profile_rejected(make_profile):
    await make_profile(user_id="u-1")
    with pytest.raises(ConflictError):
        await make_profile(user_id="u-1")


async def test_update_recomputes_from_merged_attributes(db, make_profile, profile_service, event_sink):
    await make_profile(user_id="u-1")

    profile = await profile_service.update_profile(
        db,
        "u-1",
        {"follower_count": 150_000, "engagement_rate": 6.0, "location": {"city": "Pune"}},
    )

    assert profile.category == "Fashion"
    assert profile.engagement_quality == "High"
    # r = 0.06 is above the 100K-1M band [0.01, 0.05]
    assert profile.audience_authenticity == "Medium"
    assert profile.insight_score == 50 + 20 + 7 + 7 + 5
    assert profile.strengths[:2] == ["High reach potential", "Exceptional engagement"]
    assert profile.profile_completion_percentage == 74
    assert event_sink.names() == ["insights.updated", "insights.updated"]


async def test_update_ignores_derived_fields(db, make_profile, profile_service):
    await make_profile(user_id="u-1")
    profile = await profile_service.update_profile(db, "u-1", {"insight_score": 99, "bio": "Short"})
    assert profile.insight_score == 83
    assert profile.profile_completion_percentage == 56
    assert profile.onboarding_completed is False


async def test_update_missing_profile(db, profile_service):
    with pytest.raises(PreconditionError, match="profile required"):
        await profile_service.update_profile(db, "nobody", {"bio": "hello there world"})


async def test_unrelated_update_keeps_strengths(db, make_profile, profile_service):
    created = await make_profile(user_id="u-1", follower_count=1_000, engagement_rate=1.0, category="Food",
                                 availability_status=None)
    before = list(created.strengths)

    updated = await profile_service.update_profile(db, "u-1", {"bio": "Street food walks across Pune"})

    assert before == ["Food niche expert", "Budget-friendly rates"]
    assert updated.strengths == before


@pytest.mark.parametrize("missing", ["price_min", "price_max"])
async def test_create_requires_full_price_range(make_profile, missing):
    with pytest.raises(ValidationError, match="Price range"):
        await make_profile(**{missing: None})


async def test_update_cannot_clear_price(db, make_profile, profile_service):
    await make_profile(user_id="u-1")
    with pytest.raises(ValidationError, match="Price range"):
        await profile_service.update_profile(db, "u-1", {"price_min": None})


async def test_promotion_types_cannot_be_emptied(db, make_profile, profile_service):
    await make_profile(user_id="u-1")
    with pytest.raises(ValidationError, match="promotion type"):
        await profile_service.update_profile(db, "u-1", {"promotion_types": []})

    profile = await profile_service.get_profile(db, "u-1")
    assert profile.promotion_types == ["REELS", "STORIES"]


async def test_create_requires_promotion_types(make_profile):
    with pytest.raises(ValidationError, match="promotion type"):
        await make_profile(promotion_types=[])


async def test_profile_lookup_by_id(make_profile, db, profile_service):
    profile = await make_profile()
    assert (await profile_service.get_profile_by_id(db, profile.id)).user_id == profile.user_id
    with pytest.raises(NotFoundError):
        await profile_service.get_profile_by_id(db, 9999)


async def test_get_profile_requires_profile(db, profile_service):
    with pytest.raises(PreconditionError, match="profile required"):
        await profile_service.get_profile(db, "nobody")


async def test_price_range_validated_after_merge(db, make_profile, profile_service):
    await make_profile(user_id="u-1")
    with pytest.raises(ValidationError):
        await profile_service.update_profile(db, "u-1", {"price_min": 3000})


async def test_engagement_rate_out_of_range(make_profile):
    with pytest.raises(ValidationError):
        await make_profile(engagement_rate=120)


async def test_record_completed_promotion_refreshes_insights(db, make_profile, profile_service):
    profile = await make_profile(user_id="u-1")

    updated = await profile_service.record_completed_promotion(db, profile.id)
    await db.commit()

    assert updated.total_promotions == 1
    assert updated.successful_promotions == 1
    assert updated.insight_score == 86


async def test_record_completed_promotion_unknown_profile(db, profile_service):
    assert await profile_service.record_completed_promotion(db, 9999) is None
