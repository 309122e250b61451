from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from creator_match.errors import NotFoundError
from creator_match.models.creator_profile import AvailabilityStatus, CreatorProfile
from creator_match.models.promotion import CreatorMatch, PromotionRequest
from creator_match.services.insights import is_available, to_number
from creator_match.services.profiles import profile_attributes

logger = logging.getLogger(__name__)

# Weighted blend of the per-factor scores; sums to 1.0
SCORING_WEIGHTS = {
    "engagement": 0.30,
    "niche": 0.25,
    "price": 0.20,
    "insight": 0.15,
    "availability": 0.05,
    "track_record": 0.05,
}

# Engagement rate a creator is expected to reach for their size: (upper follower bound, benchmark %)
ENGAGEMENT_BENCHMARKS = [
    (50_000, 4.0),
    (500_000, 2.5),
]
ENGAGEMENT_BENCHMARK_LARGE = 1.5

# Categories that earn half credit when they are not the exact target
RELATED_CATEGORIES = {
    "Fashion": ["Beauty", "Lifestyle"],
    "Beauty": ["Fashion", "Lifestyle", "Health"],
    "Fitness": ["Health", "Lifestyle", "Sports"],
    "Health": ["Fitness", "Lifestyle", "Beauty"],
    "Food": ["Lifestyle", "Travel", "Health"],
    "Travel": ["Lifestyle", "Food"],
    "Tech": ["Gaming", "Education", "Business"],
    "Gaming": ["Tech", "Entertainment"],
    "Education": ["Tech", "Business"],
    "Entertainment": ["Gaming", "Lifestyle", "Music"],
    "Business": ["Tech", "Education"],
    "Art": ["Music", "Entertainment"],
    "Music": ["Art", "Entertainment"],
    "Sports": ["Fitness", "Health"],
    "Lifestyle": ["Fashion", "Beauty", "Food", "Travel", "Health"],
}

MAX_SUGGESTIONS = 20
DEFAULT_INSIGHT_SCORE = 50

# Labels used in the per-factor breakdown shown to sellers
BREAKDOWN_LABELS = {
    "engagement": "engagement",
    "niche": "niche_similarity",
    "price": "price_compatibility",
    "insight": "profile_quality",
    "availability": "availability",
    "track_record": "track_record",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _follower_label(follower_count: float) -> str:
    if follower_count >= 1_000_000:
        return f"{follower_count / 1_000_000:.1f}M"
    if follower_count >= 1_000:
        return f"{follower_count / 1_000:.0f}K"
    return str(int(follower_count))


class RankingService:
    """Ranks eligible creators for a seller's promotion request.

    Two layers: a hard filter (available, inside the follower range, same
    category, a shared promotion type, asking price within budget) and a
    weighted 0-100 score over six factors with a readable reason string.
    """

    def __init__(self, weights: dict | None = None):
        self.weights = {**SCORING_WEIGHTS, **(weights or {})}

    @staticmethod
    def engagement_score(engagement_rate: float, follower_count: float) -> float:
        """0-100; meeting the benchmark for the creator's size scores 50."""
        engagement_rate = to_number(engagement_rate)
        follower_count = to_number(follower_count)

        benchmark = ENGAGEMENT_BENCHMARK_LARGE
        for upper, tier_benchmark in ENGAGEMENT_BENCHMARKS:
            if follower_count < upper:
                benchmark = tier_benchmark
                break

        return max(0.0, min(100.0, engagement_rate / benchmark * 50))

    @staticmethod
    def niche_similarity(creator_category: Optional[str], target_category: Optional[str]) -> float:
        if creator_category and creator_category == target_category:
            return 100.0
        if creator_category in RELATED_CATEGORIES.get(target_category or "", []):
            return 50.0
        return 0.0

    @staticmethod
    def price_compatibility(price_min, price_max, budget_min, budget_max) -> float:
        """100 when the creator's mid price is within the mid budget, then 1 point off per % over."""
        creator_mid = (to_number(price_min) + to_number(price_max)) / 2
        budget_mid = (to_number(budget_min) + to_number(budget_max)) / 2

        if creator_mid <= budget_mid:
            return 100.0
        if budget_mid <= 0:
            return 0.0

        over_budget_percent = (creator_mid - budget_mid) / budget_mid * 100
        return max(0.0, 100 - over_budget_percent)

    @staticmethod
    def track_record_score(successful_promotions, average_rating) -> float:
        successful = to_number(successful_promotions)
        rating = to_number(average_rating)
        score = 50

        if successful >= 10:
            score += 30
        elif successful >= 5:
            score += 20
        elif successful >= 1:
            score += 10

        if rating >= 4.5:
            score += 20
        elif rating >= 4:
            score += 15
        elif rating >= 3.5:
            score += 10

        return float(min(100, score))

    def score_factors(self, creator: Mapping, request: PromotionRequest) -> dict[str, float]:
        return {
            "engagement": self.engagement_score(creator.get("engagement_rate"), creator.get("follower_count")),
            "niche": self.niche_similarity(creator.get("category"), request.target_category),
            "price": self.price_compatibility(
                creator.get("price_min"), creator.get("price_max"), request.budget_min, request.budget_max
            ),
            "insight": float(creator.get("insight_score") or DEFAULT_INSIGHT_SCORE),
            "availability": 100.0 if is_available(creator) else 0.0,
            "track_record": self.track_record_score(
                creator.get("successful_promotions"), creator.get("average_rating")
            ),
        }

    def match_score(self, scores: Mapping) -> int:
        total = sum(scores[factor] * weight for factor, weight in self.weights.items())
        return min(100, max(0, _round_half_up(total)))

    @staticmethod
    def match_reason(creator: Mapping, scores: Mapping) -> str:
        reasons = []

        if scores["engagement"] >= 70:
            reasons.append(f"Strong engagement ({to_number(creator.get('engagement_rate')):.1f}%)")

        if scores["niche"] == 100:
            reasons.append(f"Exact niche fit ({creator.get('category')})")
        elif scores["niche"] >= 50:
            reasons.append(f"Related niche ({creator.get('category')})")

        if scores["price"] >= 80:
            reasons.append("Within budget")
        elif scores["price"] >= 50:
            reasons.append("Slightly above budget")

        if to_number(creator.get("insight_score")) >= 70:
            reasons.append("High-quality profile")

        successful = to_number(creator.get("successful_promotions"))
        if successful >= 5:
            reasons.append(f"{int(successful)} successful campaigns")

        reasons.append(f"{_follower_label(to_number(creator.get('follower_count')))} followers")
        return " • ".join(reasons)

    @staticmethod
    def shares_promotion_type(creator: Mapping, request: PromotionRequest) -> bool:
        return bool(set(creator.get("promotion_types") or []) & set(request.promotion_types))

    async def filter_creators(self, db: AsyncSession, request: PromotionRequest) -> list[CreatorProfile]:
        # promotion_types is a JSON list, so the overlap is checked after the query
        result = await db.execute(
            select(CreatorProfile).where(
                CreatorProfile.availability_status == AvailabilityStatus.AVAILABLE_NOW.value,
                CreatorProfile.follower_count >= request.min_followers,
                CreatorProfile.follower_count <= request.max_followers,
                CreatorProfile.category == request.target_category,
                CreatorProfile.price_min <= request.budget_max,
            )
        )
        return [
            profile
            for profile in result.scalars().all()
            if self.shares_promotion_type(profile_attributes(profile), request)
        ]

    def rank_creators(self, creators: list[CreatorProfile], request: PromotionRequest) -> list[dict]:
        ranked = []
        for profile in creators:
            attrs = profile_attributes(profile)
            scores = self.score_factors(attrs, request)
            ranked.append(
                {
                    "creator": profile,
                    "match_score": self.match_score(scores),
                    "match_reason": self.match_reason(attrs, scores),
                    "scores": {factor: round(value, 1) for factor, value in scores.items()},
                }
            )
        ranked.sort(key=lambda match: (-match["match_score"], match["creator"].id))
        return ranked

    async def refresh_matches(self, db: AsyncSession, request: PromotionRequest) -> list[CreatorMatch]:
        """Replace the request's stored suggestions with a fresh ranking. The caller commits."""
        await db.execute(delete(CreatorMatch).where(CreatorMatch.promotion_id == request.id))

        ranked = self.rank_creators(await self.filter_creators(db, request), request)[:MAX_SUGGESTIONS]
        now = datetime.now(timezone.utc)
        matches = [
            CreatorMatch(
                promotion_id=request.id,
                creator_id=match["creator"].id,
                match_score=match["match_score"],
                match_reason=match["match_reason"],
                scores=match["scores"],
                ranked_at=now,
            )
            for match in ranked
        ]
        db.add_all(matches)

        logger.info("Ranked %d creators for promotion request %s", len(matches), request.id)
        return matches

    async def list_matches(self, db: AsyncSession, request: PromotionRequest) -> list[CreatorMatch]:
        result = await db.execute(
            select(CreatorMatch)
            .options(selectinload(CreatorMatch.creator))
            .where(CreatorMatch.promotion_id == request.id)
            .order_by(CreatorMatch.match_score.desc(), CreatorMatch.creator_id.asc())
        )
        return list(result.scalars().all())

    async def explain_match(self, db: AsyncSession, request: PromotionRequest, creator_id: int) -> dict:
        """Per-factor breakdown for any creator, whether or not they passed the filter."""
        profile = await db.get(CreatorProfile, creator_id)
        if not profile:
            raise NotFoundError("Creator profile not found")

        attrs = profile_attributes(profile)
        scores = self.score_factors(attrs, request)
        return {
            "creator": profile,
            "match_score": self.match_score(scores),
            "match_reason": self.match_reason(attrs, scores),
            "breakdown": {
                BREAKDOWN_LABELS[factor]: {
                    "score": round(scores[factor], 1),
                    "weight": weight,
                    "contribution": round(scores[factor] * weight, 2),
                }
                for factor, weight in self.weights.items()
            },
        }
