import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creator_match.errors import NotFoundError, PreconditionError, ValidationError
from creator_match.models.promotion import (
    CreatorMatch,
    MatchedCreator,
    MatchStatus,
    PromotionRequest,
    PromotionRequestType,
    RequestStatus,
)
from creator_match.services import events
from creator_match.services.profiles import ProfileService, normalize_promotion_types
from creator_match.services.ranking import RankingService

logger = logging.getLogger(__name__)

# Seller-driven transitions: target status -> statuses it may be entered from
SELLER_TRANSITIONS = {
    RequestStatus.COMPLETED.value: (RequestStatus.ACCEPTED.value,),
    RequestStatus.CANCELLED.value: (
        RequestStatus.OPEN.value,
        RequestStatus.CREATOR_INTERESTED.value,
        RequestStatus.ACCEPTED.value,
    ),
}

# Columns a seller may change while the request is still OPEN
EDITABLE_REQUEST_FIELDS = (
    "title",
    "description",
    "target_category",
    "min_followers",
    "max_followers",
    "budget_min",
    "budget_max",
    "campaign_goal",
    "deadline",
)

# Top suggestions told about a new or edited request
NOTIFY_TOP_MATCHES = 10


def _validate_criteria(attrs: dict) -> None:
    if (attrs.get("max_followers") or 0) < (attrs.get("min_followers") or 0):
        raise ValidationError("Maximum follower count must be greater than or equal to minimum")
    if (attrs.get("budget_max") or 0) < (attrs.get("budget_min") or 0):
        raise ValidationError("Maximum budget must be greater than or equal to minimum budget")


class PromotionService:
    def __init__(
        self,
        profile_service: ProfileService | None = None,
        ranking_service: RankingService | None = None,
        event_sink=None,
    ):
        self.profiles = profile_service or ProfileService()
        self.ranking = ranking_service or RankingService()
        self.events = event_sink or events.get_event_sink()

    async def create_request(self, db: AsyncSession, seller_id: str, attrs: dict) -> PromotionRequest:
        promotion_types = normalize_promotion_types(attrs.get("promotion_types"))
        if not promotion_types:
            raise ValidationError("At least one promotion type is required")
        _validate_criteria(attrs)

        request = PromotionRequest(
            seller_id=seller_id,
            title=attrs["title"],
            description=attrs.get("description", ""),
            target_category=attrs["target_category"],
            min_followers=attrs.get("min_followers", 0),
            max_followers=attrs.get("max_followers", 0),
            budget_min=attrs.get("budget_min", 0),
            budget_max=attrs.get("budget_max", 0),
            campaign_goal=attrs.get("campaign_goal"),
            deadline=attrs.get("deadline"),
            status=RequestStatus.OPEN.value,
            types=[PromotionRequestType(promotion_type=t) for t in promotion_types],
        )
        db.add(request)
        await db.flush()
        matches = await self.ranking.refresh_matches(db, request)
        await db.commit()

        logger.info("Seller %s opened promotion request %s", seller_id, request.id)
        await self._publish_matches(request, matches)
        return request

    async def update_request(
        self, db: AsyncSession, seller_id: str, request_id: int, changes: dict
    ) -> PromotionRequest:
        """Edit an OPEN request and re-rank creators against the new criteria."""
        request = await self.get_seller_request(db, seller_id, request_id)

        values = {key: changes[key] for key in EDITABLE_REQUEST_FIELDS if key in changes}
        merged = {key: getattr(request, key) for key in EDITABLE_REQUEST_FIELDS}
        merged.update(values)
        _validate_criteria(merged)

        promotion_types = None
        if "promotion_types" in changes:
            promotion_types = normalize_promotion_types(changes["promotion_types"])
            if not promotion_types:
                raise ValidationError("At least one promotion type is required")

        result = await db.execute(
            update(PromotionRequest)
            .where(
                PromotionRequest.id == request.id,
                PromotionRequest.status == RequestStatus.OPEN.value,
            )
            .values(status=RequestStatus.OPEN.value, **values)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise PreconditionError("Cannot update request after creators have shown interest")

        if promotion_types is not None:
            # keep rows for unchanged types so the (request, type) pair is never inserted twice
            kept = [t for t in request.types if t.promotion_type in promotion_types]
            existing = {t.promotion_type for t in kept}
            request.types = kept + [
                PromotionRequestType(promotion_type=t) for t in promotion_types if t not in existing
            ]

        matches = await self.ranking.refresh_matches(db, request)
        await db.commit()
        await db.refresh(request)

        logger.info("Seller %s edited promotion request %s", seller_id, request.id)
        await self._publish_matches(request, matches)
        return request

    async def delete_request(self, db: AsyncSession, seller_id: str, request_id: int) -> None:
        request = await self.get_seller_request(db, seller_id, request_id)
        promotion_id, title = request.id, request.title

        applicants = await db.execute(
            select(MatchedCreator.creator_id).where(
                MatchedCreator.promotion_id == promotion_id,
                MatchedCreator.status.in_((MatchStatus.APPLIED.value, MatchStatus.INVITED.value)),
            )
        )
        suggested = await db.execute(
            select(CreatorMatch.creator_id).where(CreatorMatch.promotion_id == promotion_id)
        )
        creator_ids = sorted(set(applicants.scalars().all()) | set(suggested.scalars().all()))

        await db.delete(request)
        await db.commit()

        logger.info("Seller %s deleted promotion request %s", seller_id, promotion_id)
        await self.events.publish(
            events.REQUEST_DELETED,
            {"promotion_id": promotion_id, "seller_id": seller_id, "title": title, "creator_ids": creator_ids},
        )

    async def _publish_matches(self, request: PromotionRequest, matches: list[CreatorMatch]) -> None:
        if not matches:
            return
        await self.events.publish(
            events.CREATORS_MATCHED,
            {
                "promotion_id": request.id,
                "seller_id": request.seller_id,
                "match_count": len(matches),
                "creator_ids": [m.creator_id for m in matches[:NOTIFY_TOP_MATCHES]],
            },
        )

    async def get_request(self, db: AsyncSession, request_id: int) -> PromotionRequest:
        request = await db.get(PromotionRequest, request_id)
        if not request:
            raise NotFoundError("Promotion request not found")
        return request

    async def get_seller_request(self, db: AsyncSession, seller_id: str, request_id: int) -> PromotionRequest:
        """A seller only sees their own requests; anyone else's reads as missing."""
        result = await db.execute(
            select(PromotionRequest).where(
                PromotionRequest.id == request_id,
                PromotionRequest.seller_id == seller_id,
            )
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Promotion request not found")
        return request

    async def list_seller_requests(self, db: AsyncSession, seller_id: str) -> list[PromotionRequest]:
        result = await db.execute(
            select(PromotionRequest)
            .where(PromotionRequest.seller_id == seller_id)
            .order_by(PromotionRequest.created_at.desc(), PromotionRequest.id.desc())
        )
        return list(result.scalars().all())

    async def update_request_status(
        self, db: AsyncSession, seller_id: str, request_id: int, status: str
    ) -> PromotionRequest:
        if status not in SELLER_TRANSITIONS:
            raise ValidationError("Status must be COMPLETED or CANCELLED")

        request = await self.get_seller_request(db, seller_id, request_id)
        current_status = request.status
        values = {"status": status}
        if status == RequestStatus.COMPLETED.value:
            values["completed_at"] = datetime.now(timezone.utc)

        result = await db.execute(
            update(PromotionRequest)
            .where(
                PromotionRequest.id == request.id,
                PromotionRequest.status.in_(SELLER_TRANSITIONS[status]),
            )
            .values(**values)
        )
        if result.rowcount != 1:
            await db.rollback()
            if status == RequestStatus.COMPLETED.value:
                raise PreconditionError("Can only complete an accepted campaign")
            raise PreconditionError(f"Cannot cancel a campaign that is {current_status}")

        if status == RequestStatus.COMPLETED.value and request.accepted_creator_id:
            await self.profiles.record_completed_promotion(db, request.accepted_creator_id)

        await db.commit()
        await db.refresh(request)

        logger.info("Promotion request %s marked %s", request.id, status)
        return request
