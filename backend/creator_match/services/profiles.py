import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creator_match.errors import ConflictError, NotFoundError, PreconditionError, ValidationError
from creator_match.models.creator_profile import CreatorProfile
from creator_match.services import events
from creator_match.services.completion import CompletionService
from creator_match.services.insights import InsightService

logger = logging.getLogger(__name__)

# Creator-editable attributes; everything else on the row is derived or system-managed
EDITABLE_FIELDS = (
    "instagram_username",
    "follower_count",
    "engagement_rate",
    "category",
    "promotion_types",
    "price_min",
    "price_max",
    "bio",
    "availability_status",
    "location",
    "collaboration_types",
    "portfolio_links",
    "past_experience",
    "willing_to_travel",
)

TRACK_RECORD_FIELDS = ("total_promotions", "successful_promotions", "average_rating")


def normalize_promotion_type(value: str) -> str:
    """'Website Visit' / 'website-visit' -> 'WEBSITE_VISIT'."""
    return "_".join(value.replace("-", " ").split()).upper()


def normalize_promotion_types(values) -> list[str]:
    normalized = []
    for value in values or []:
        token = normalize_promotion_type(str(value))
        if token and token not in normalized:
            normalized.append(token)
    return normalized


def profile_attributes(profile: CreatorProfile) -> dict:
    """Flatten a stored profile into the attribute mapping the rule services read."""
    attrs = {field: getattr(profile, field) for field in EDITABLE_FIELDS + TRACK_RECORD_FIELDS}
    attrs["insight_score"] = profile.insight_score
    return attrs


class ProfileService:
    def __init__(self, event_sink=None):
        self.events = event_sink or events.get_event_sink()
        self.insights = InsightService()
        self.completion = CompletionService()

    async def find_profile(self, db: AsyncSession, user_id: str) -> Optional[CreatorProfile]:
        result = await db.execute(select(CreatorProfile).where(CreatorProfile.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_profile(self, db: AsyncSession, user_id: str) -> CreatorProfile:
        profile = await self.find_profile(db, user_id)
        if not profile:
            raise PreconditionError("profile required: create your creator profile first")
        return profile

    async def get_profile_by_id(self, db: AsyncSession, profile_id: int) -> CreatorProfile:
        profile = await db.get(CreatorProfile, profile_id)
        if not profile:
            raise NotFoundError("Creator profile not found")
        return profile

    async def create_profile(self, db: AsyncSession, user_id: str, attrs: dict) -> CreatorProfile:
        existing = await db.execute(select(CreatorProfile.id).where(CreatorProfile.user_id == user_id))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Profile already exists. Update it instead.")

        profile = CreatorProfile(user_id=user_id)
        self._apply_attributes(profile, attrs)
        db.add(profile)
        await db.commit()

        logger.info("Created creator profile %s for user %s", profile.id, user_id)
        await self._publish_insights(profile)
        return profile

    async def update_profile(self, db: AsyncSession, user_id: str, updates: dict) -> CreatorProfile:
        profile = await self.get_profile(db, user_id)

        self._apply_attributes(profile, updates)
        await db.commit()

        logger.info("Updated creator profile %s", profile.id)
        await self._publish_insights(profile)
        return profile

    async def record_completed_promotion(self, db: AsyncSession, profile_id: int) -> Optional[CreatorProfile]:
        """Bump the creator's track record and re-derive insights. The caller commits."""
        await db.execute(
            update(CreatorProfile)
            .where(CreatorProfile.id == profile_id)
            .values(
                total_promotions=CreatorProfile.total_promotions + 1,
                successful_promotions=CreatorProfile.successful_promotions + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(
            select(CreatorProfile)
            .where(CreatorProfile.id == profile_id)
            .execution_options(populate_existing=True)
        )
        profile = result.scalar_one_or_none()
        if profile is None:
            logger.warning("Completed promotion for unknown creator profile %s", profile_id)
            return None

        self.refresh_derived(profile, profile_attributes(profile))
        return profile

    def refresh_derived(self, profile: CreatorProfile, attrs: dict) -> None:
        """Rewrite the insight snapshot and completion from the full attribute set."""
        insights = self.insights.generate_insights(attrs)
        profile.engagement_quality = insights["engagement_quality"]
        profile.audience_authenticity = insights["audience_authenticity"]
        profile.strengths = insights["strengths"]
        profile.profile_summary = insights["profile_summary"]
        profile.insight_score = insights["score"]
        profile.last_analyzed = insights["last_analyzed"]

        completion = self.completion.calculate(attrs)
        profile.profile_completion_percentage = completion["percentage"]
        profile.onboarding_completed = completion["onboarding_completed"]

    def _apply_attributes(self, profile: CreatorProfile, changes: dict) -> None:
        merged = profile_attributes(profile)
        for key, value in changes.items():
            if key in EDITABLE_FIELDS:
                merged[key] = value
        merged["promotion_types"] = normalize_promotion_types(merged.get("promotion_types"))

        self._validate(merged)

        for key in EDITABLE_FIELDS:
            setattr(profile, key, merged[key])
        self.refresh_derived(profile, merged)

    @staticmethod
    def _validate(attrs: dict) -> None:
        if (attrs.get("follower_count") or 0) < 0:
            raise ValidationError("Follower count cannot be negative")
        if not 0 <= (attrs.get("engagement_rate") or 0) <= 100:
            raise ValidationError("Engagement rate must be between 0 and 100")
        if not attrs.get("promotion_types"):
            raise ValidationError("At least one promotion type is required")

        price_min = attrs.get("price_min")
        price_max = attrs.get("price_max")
        if price_min is None or price_max is None:
            raise ValidationError("Price range requires both a minimum and a maximum")
        if price_min < 0 or price_max < 0:
            raise ValidationError("Price cannot be negative")
        if price_max < price_min:
            raise ValidationError("Maximum price must be greater than or equal to minimum price")

    async def _publish_insights(self, profile: CreatorProfile) -> None:
        await self.events.publish(
            events.INSIGHTS_UPDATED,
            {
                "user_id": profile.user_id,
                "profile_id": profile.id,
                "score": profile.insight_score,
                "engagement_quality": profile.engagement_quality,
                "audience_authenticity": profile.audience_authenticity,
                "profile_completion_percentage": profile.profile_completion_percentage,
            },
        )
