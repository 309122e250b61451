import logging
import math
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from creator_match.config import get_settings
from creator_match.errors import PreconditionError, ValidationError
from creator_match.models.creator_profile import CreatorProfile
from creator_match.models.promotion import (
    APPLICABLE_STATUSES,
    MatchedCreator,
    MatchStatus,
    PromotionRequest,
    PromotionRequestType,
)

logger = logging.getLogger(__name__)


class MatchingService:
    """Hard-filter promotion requests for a creator.

    A request is returned only when every clause holds: it still takes
    applications, its target category equals the creator's, it shares at
    least one promotion type with the creator, and the creator's follower
    count sits inside its follower range (both ends inclusive). There is no
    partial credit; a request failing any clause is left out.
    """

    def __init__(self):
        settings = get_settings()
        self.default_page_size = settings.default_page_size
        self.max_page_size = settings.max_page_size

    @staticmethod
    def match_conditions(profile: CreatorProfile) -> list:
        followers = profile.follower_count or 0
        promotion_types = list(profile.promotion_types or [])
        return [
            PromotionRequest.status.in_(APPLICABLE_STATUSES),
            PromotionRequest.target_category == profile.category,
            PromotionRequest.types.any(PromotionRequestType.promotion_type.in_(promotion_types)),
            PromotionRequest.min_followers <= followers,
            PromotionRequest.max_followers >= followers,
        ]

    async def find_matching_requests(
        self,
        db: AsyncSession,
        profile: Optional[CreatorProfile],
        page: int = 1,
        limit: Optional[int] = None,
    ) -> dict:
        if profile is None:
            raise PreconditionError("profile required: create your profile to see matching promotions")
        if page < 1:
            raise ValidationError("Page must be 1 or greater")
        limit = min(limit or self.default_page_size, self.max_page_size)
        if limit < 1:
            raise ValidationError("Limit must be 1 or greater")

        conditions = self.match_conditions(profile)

        count_result = await db.execute(
            select(func.count()).select_from(PromotionRequest).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await db.execute(
            select(PromotionRequest)
            .where(*conditions)
            .order_by(PromotionRequest.created_at.desc(), PromotionRequest.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        requests = result.scalars().all()

        applied_ids = await self._applied_request_ids(db, profile.id, [r.id for r in requests])

        logger.info(
            "Creator %s matched %d promotion requests (page %d, %d on page)",
            profile.id, total, page, len(requests),
        )
        return {
            "items": [
                {"request": request, "has_applied": request.id in applied_ids}
                for request in requests
            ],
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        }

    @staticmethod
    async def _applied_request_ids(db: AsyncSession, creator_id: int, request_ids: list[int]) -> set[int]:
        if not request_ids:
            return set()
        result = await db.execute(
            select(MatchedCreator.promotion_id).where(
                MatchedCreator.creator_id == creator_id,
                MatchedCreator.promotion_id.in_(request_ids),
                MatchedCreator.status == MatchStatus.APPLIED.value,
            )
        )
        return {row[0] for row in result.fetchall()}
