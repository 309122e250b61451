from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from creator_match.models.creator_profile import AvailabilityStatus


HIGH = "High"
MEDIUM = "Medium"
LOW = "Low"

# (upper follower bound, high threshold, medium threshold). Engagement falls as
# audiences grow, so the bar for "High" drops with each tier.
ENGAGEMENT_TIERS = [
    (50_000, 5.0, 2.5),
    (500_000, 3.5, 1.5),
    (1_000_000, 2.5, 1.0),
]
ENGAGEMENT_TIER_MEGA = (1.5, 0.5)

# (upper follower bound, expected min ratio, expected max ratio)
AUTHENTICITY_BANDS = [
    (10_000, 0.03, 0.15),
    (100_000, 0.02, 0.10),
    (1_000_000, 0.01, 0.05),
]
AUTHENTICITY_BAND_MEGA = (0.005, 0.03)

ENGAGEMENT_CLAUSES = {
    HIGH: "Exceptional engagement rates indicate a highly active audience.",
    MEDIUM: "Solid engagement metrics within industry standards.",
    LOW: "Engagement could be improved but offers wide reach.",
}

AUTHENTICITY_CLAUSES = {
    HIGH: "Audience appears highly authentic and engaged.",
    MEDIUM: "Audience authenticity is within normal range.",
    LOW: "Consider reviewing audience quality metrics.",
}

MAX_STRENGTHS = 5


def to_number(value: Any) -> float:
    """Coerce a possibly-missing numeric attribute; anything unusable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _price_min(profile: Mapping) -> float:
    price_range = profile.get("price_range")
    if isinstance(price_range, Mapping):
        return to_number(price_range.get("min"))
    return to_number(profile.get("price_min"))


def is_available(profile: Mapping) -> bool:
    """Only AVAILABLE_NOW counts; profiles without a status fall back to a plain flag."""
    status = profile.get("availability_status")
    if status:
        return status == AvailabilityStatus.AVAILABLE_NOW.value
    return bool(profile.get("is_available"))


def follower_tier(follower_count: float) -> str:
    if follower_count >= 1_000_000:
        return "mega"
    if follower_count >= 500_000:
        return "macro"
    if follower_count >= 100_000:
        return "mid-tier"
    if follower_count >= 10_000:
        return "micro"
    return "nano"


def format_followers(follower_count: float) -> str:
    if follower_count >= 1_000_000:
        return f"{follower_count / 1_000_000:.1f}M"
    if follower_count >= 1_000:
        return f"{follower_count / 1_000:.1f}K"
    return str(int(follower_count))


class InsightService:
    """Explainable, rule-based profile insights.

    Every method is pure: the same attributes always produce the same
    classification, strengths, summary and score. Attributes are read from a
    mapping with snake_case keys; missing numbers count as 0 and missing
    collections as empty, so none of these methods raise.
    """

    def classify_engagement_quality(self, engagement_rate: float, follower_count: float) -> str:
        engagement_rate = to_number(engagement_rate)
        follower_count = to_number(follower_count)

        high, medium = ENGAGEMENT_TIER_MEGA
        for upper, tier_high, tier_medium in ENGAGEMENT_TIERS:
            if follower_count < upper:
                high, medium = tier_high, tier_medium
                break

        if engagement_rate >= high:
            return HIGH
        if engagement_rate >= medium:
            return MEDIUM
        return LOW

    def estimate_audience_authenticity(self, engagement_rate: float, follower_count: float) -> str:
        """Compare the engagement/follower ratio with the band expected for the tier.

        Inside the band is High. Outside it, the Medium test is
        ``ratio >= min * 0.5 or ratio <= max * 1.5``; since ``min * 0.5`` is
        always below ``max * 1.5`` every ratio passes it, so Low is never
        produced. The rule is kept as-is.
        """
        ratio = to_number(engagement_rate) / 100
        follower_count = to_number(follower_count)

        expected_min, expected_max = AUTHENTICITY_BAND_MEGA
        for upper, band_min, band_max in AUTHENTICITY_BANDS:
            if follower_count < upper:
                expected_min, expected_max = band_min, band_max
                break

        if expected_min <= ratio <= expected_max:
            return HIGH
        if ratio >= expected_min * 0.5 or ratio <= expected_max * 1.5:
            return MEDIUM
        return LOW

    def identify_strengths(self, profile: Mapping) -> list[str]:
        # Rule order decides which tags survive the cut, not their importance.
        followers = to_number(profile.get("follower_count"))
        engagement_rate = to_number(profile.get("engagement_rate"))
        promotion_types = profile.get("promotion_types") or []
        category = profile.get("category")
        price_min = _price_min(profile)
        has_price = profile.get("price_range") is not None or profile.get("price_min") is not None

        strengths = []

        if followers >= 100_000:
            strengths.append("High reach potential")
        elif followers >= 50_000:
            strengths.append("Good reach potential")

        if engagement_rate >= 5:
            strengths.append("Exceptional engagement")
        elif engagement_rate >= 3:
            strengths.append("Strong engagement")

        if len(promotion_types) >= 3:
            strengths.append("Versatile content formats")

        if category:
            strengths.append(f"{category} niche expert")

        if has_price and price_min < 1000:
            strengths.append("Budget-friendly rates")

        if has_price and price_min >= 5000:
            strengths.append("Premium influencer tier")

        if is_available(profile):
            strengths.append("Currently available")

        if to_number(profile.get("successful_promotions")) >= 5:
            strengths.append("Proven track record")

        if to_number(profile.get("average_rating")) >= 4.5:
            strengths.append("Highly rated by brands")

        return strengths[:MAX_STRENGTHS]

    def generate_profile_summary(
        self,
        profile: Mapping,
        engagement_quality: str,
        audience_authenticity: str,
    ) -> str:
        followers = to_number(profile.get("follower_count"))
        category = profile.get("category") or "general content"
        tier = follower_tier(followers)

        summary = f"{tier[0].upper() + tier[1:]}-influencer in {category} with {format_followers(followers)} followers. "
        summary += ENGAGEMENT_CLAUSES.get(engagement_quality, ENGAGEMENT_CLAUSES[LOW]) + " "
        summary += AUTHENTICITY_CLAUSES.get(audience_authenticity, AUTHENTICITY_CLAUSES[LOW])
        return summary

    def calculate_profile_score(
        self,
        profile: Mapping,
        engagement_quality: str,
        audience_authenticity: str,
    ) -> int:
        """Composite 0-100 score, also the default match score on application."""
        score = 50

        if engagement_quality == HIGH:
            score += 20
        elif engagement_quality == MEDIUM:
            score += 10

        if audience_authenticity == HIGH:
            score += 15
        elif audience_authenticity == MEDIUM:
            score += 7

        followers = to_number(profile.get("follower_count"))
        if followers >= 500_000:
            score += 10
        elif followers >= 100_000:
            score += 7
        elif followers >= 50_000:
            score += 5
        elif followers >= 10_000:
            score += 3

        if is_available(profile):
            score += 5

        successful = to_number(profile.get("successful_promotions"))
        if successful >= 10:
            score += 10
        elif successful >= 5:
            score += 6
        elif successful >= 1:
            score += 3

        return int(min(100, max(0, score)))

    def generate_insights(self, profile: Mapping) -> dict:
        engagement_rate = profile.get("engagement_rate")
        follower_count = profile.get("follower_count")

        engagement_quality = self.classify_engagement_quality(engagement_rate, follower_count)
        audience_authenticity = self.estimate_audience_authenticity(engagement_rate, follower_count)

        return {
            "engagement_quality": engagement_quality,
            "audience_authenticity": audience_authenticity,
            "strengths": self.identify_strengths(profile),
            "profile_summary": self.generate_profile_summary(
                profile, engagement_quality, audience_authenticity
            ),
            "score": self.calculate_profile_score(profile, engagement_quality, audience_authenticity),
            "last_analyzed": datetime.now(timezone.utc),
        }


def compute_insights(profile: Mapping) -> dict:
    return InsightService().generate_insights(profile)
