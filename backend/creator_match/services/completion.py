from __future__ import annotations

from collections.abc import Mapping

from creator_match.services.insights import to_number


ESSENTIAL_FIELD_POINTS = 10
QUALITY_FIELD_POINTS = 8
ONBOARDING_THRESHOLD = 60


def _has_location(location) -> bool:
    if not isinstance(location, Mapping):
        return False
    return bool(location.get("district") or location.get("city"))


def _has_price(profile: Mapping) -> bool:
    price_range = profile.get("price_range")
    if isinstance(price_range, Mapping):
        low, high = price_range.get("min"), price_range.get("max")
    else:
        low, high = profile.get("price_min"), profile.get("price_max")
    return to_number(low) > 0 or to_number(high) > 0


class CompletionService:
    """Weighted field-presence score for a creator profile.

    Always pass the merged attribute set (stored values overlaid with the
    incoming update); the result is recomputed from scratch, never adjusted
    by a delta.
    """

    def essential_checks(self, profile: Mapping) -> dict[str, bool]:
        return {
            "category": bool(profile.get("category")),
            "promotion_types": bool(profile.get("promotion_types")),
            "price_range": _has_price(profile),
            "availability_status": bool(profile.get("availability_status")),
            "collaboration_types": bool(profile.get("collaboration_types")),
            "location": _has_location(profile.get("location")),
        }

    def quality_checks(self, profile: Mapping) -> dict[str, bool]:
        willing_to_travel = profile.get("willing_to_travel")
        return {
            "bio": len(profile.get("bio") or "") > 10,
            "follower_count": to_number(profile.get("follower_count")) > 0,
            "engagement_rate": to_number(profile.get("engagement_rate")) > 0,
            "portfolio_links": bool(profile.get("portfolio_links")),
            "willing_to_travel": bool(willing_to_travel) and str(willing_to_travel).upper() != "NO",
        }

    def calculate(self, profile: Mapping) -> dict:
        essential = self.essential_checks(profile)
        quality = self.quality_checks(profile)

        total = ESSENTIAL_FIELD_POINTS * sum(essential.values())
        total += QUALITY_FIELD_POINTS * sum(quality.values())
        percentage = min(100, total)

        return {
            "percentage": percentage,
            "onboarding_completed": percentage >= ONBOARDING_THRESHOLD,
            "missing_fields": [name for name, ok in {**essential, **quality}.items() if not ok],
        }


def compute_completion(profile: Mapping) -> dict:
    return CompletionService().calculate(profile)
