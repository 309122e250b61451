from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from creator_match.errors import ConflictError, NotFoundError, PreconditionError
from creator_match.models.creator_profile import CreatorProfile
from creator_match.models.promotion import (
    APPLICABLE_STATUSES,
    MatchedCreator,
    MatchStatus,
    PromotionRequest,
    RequestStatus,
)
from creator_match.services import events
from creator_match.services.promotions import PromotionService

logger = logging.getLogger(__name__)

DEFAULT_MATCH_SCORE = 50

# Statuses shown in a creator's application history
HISTORY_STATUSES = (MatchStatus.APPLIED.value, MatchStatus.ACCEPTED.value, MatchStatus.REJECTED.value)


@dataclass
class ApplicationResult:
    record: MatchedCreator
    request_transitioned: bool
    created: bool


def _now() -> datetime:
    return datetime.now(timezone.utc)


def match_score_for(profile: CreatorProfile) -> int:
    return profile.insight_score if profile.insight_score is not None else DEFAULT_MATCH_SCORE


class ApplicationService:
    """Creator applications, seller invitations and the request state machine.

    Every status change is a conditional UPDATE keyed on the status it is
    expected to leave, and the (promotion, creator) pair is unique at the
    database level. Two racing calls therefore end with one record and at
    most one transition.
    """

    def __init__(self, event_sink=None, promotion_service: PromotionService | None = None):
        self.events = event_sink or events.get_event_sink()
        self.promotions = promotion_service or PromotionService()

    async def apply_to_promotion(
        self,
        db: AsyncSession,
        profile: Optional[CreatorProfile],
        promotion_id: int,
    ) -> ApplicationResult:
        if profile is None:
            raise PreconditionError("profile required: create your profile before applying")

        request = await self.promotions.get_request(db, promotion_id)
        if request.status not in APPLICABLE_STATUSES:
            raise PreconditionError("promotion not open: this promotion is no longer accepting applications")

        record, created = await self._upsert_application(db, profile, request.id)
        transitioned = await self._mark_creator_interested(db, request.id)
        await db.commit()

        logger.info(
            "Creator %s applied to promotion %s (new=%s, transitioned=%s)",
            profile.id, request.id, created, transitioned,
        )
        await self.events.publish(
            events.CREATOR_APPLIED,
            {
                "promotion_id": request.id,
                "seller_id": request.seller_id,
                "creator_id": profile.id,
                "creator_user_id": profile.user_id,
                "match_score": record.match_score,
            },
        )
        return ApplicationResult(record=record, request_transitioned=transitioned, created=created)

    async def _upsert_application(
        self, db: AsyncSession, profile: CreatorProfile, promotion_id: int
    ) -> tuple[MatchedCreator, bool]:
        existing = await self._get_record(db, promotion_id, profile.id)

        if existing is None:
            record = MatchedCreator(
                promotion_id=promotion_id,
                creator_id=profile.id,
                match_score=match_score_for(profile),
                match_reason=(
                    f"Applied by creator. {profile.category} specialist "
                    f"with {profile.follower_count} followers."
                ),
                status=MatchStatus.APPLIED.value,
                applied_at=_now(),
            )
            try:
                async with db.begin_nested():
                    db.add(record)
                return record, True
            except IntegrityError:
                # Lost an insert race to a concurrent call for the same pair
                existing = await self._get_record(db, promotion_id, profile.id)
                if existing is None:
                    raise

        if existing.status == MatchStatus.APPLIED.value:
            raise ConflictError("already applied: you have already applied to this promotion")

        result = await db.execute(
            update(MatchedCreator)
            .where(
                MatchedCreator.id == existing.id,
                MatchedCreator.status != MatchStatus.APPLIED.value,
            )
            .values(status=MatchStatus.APPLIED.value, applied_at=_now())
        )
        if result.rowcount != 1:
            raise ConflictError("already applied: you have already applied to this promotion")
        return existing, False

    @staticmethod
    async def _mark_creator_interested(db: AsyncSession, promotion_id: int) -> bool:
        """OPEN -> CREATOR_INTERESTED, only if still OPEN. Never moves backwards."""
        result = await db.execute(
            update(PromotionRequest)
            .where(
                PromotionRequest.id == promotion_id,
                PromotionRequest.status == RequestStatus.OPEN.value,
            )
            .values(status=RequestStatus.CREATOR_INTERESTED.value)
        )
        return result.rowcount == 1

    @staticmethod
    async def _get_record(db: AsyncSession, promotion_id: int, creator_id: int) -> Optional[MatchedCreator]:
        result = await db.execute(
            select(MatchedCreator).where(
                MatchedCreator.promotion_id == promotion_id,
                MatchedCreator.creator_id == creator_id,
            )
        )
        return result.scalar_one_or_none()

    async def invite_creator(
        self, db: AsyncSession, seller_id: str, promotion_id: int, creator_id: int
    ) -> MatchedCreator:
        request = await self.promotions.get_seller_request(db, seller_id, promotion_id)
        if request.status not in APPLICABLE_STATUSES:
            raise PreconditionError("promotion not open: cannot invite creators to a closed promotion")

        profile = await db.get(CreatorProfile, creator_id)
        if not profile:
            raise NotFoundError("Creator profile not found")

        if await self._get_record(db, request.id, profile.id) is not None:
            raise ConflictError("Creator is already linked to this promotion")

        record = MatchedCreator(
            promotion_id=request.id,
            creator_id=profile.id,
            match_score=match_score_for(profile),
            match_reason=(
                f"Invited by brand. {profile.category} specialist "
                f"with {profile.follower_count} followers."
            ),
            status=MatchStatus.INVITED.value,
        )
        try:
            async with db.begin_nested():
                db.add(record)
        except IntegrityError:
            raise ConflictError("Creator is already linked to this promotion")
        await db.commit()

        logger.info("Seller %s invited creator %s to promotion %s", seller_id, profile.id, request.id)
        await self.events.publish(
            events.CREATOR_INVITED,
            {"promotion_id": request.id, "creator_id": profile.id, "creator_user_id": profile.user_id},
        )
        return record

    async def respond_to_invitation(
        self, db: AsyncSession, profile: Optional[CreatorProfile], promotion_id: int, accept: bool
    ) -> MatchedCreator:
        if profile is None:
            raise PreconditionError("profile required: create your profile first")

        record = await self._get_record(db, promotion_id, profile.id)
        if record is None:
            raise NotFoundError("Invitation not found")

        new_status = MatchStatus.ACCEPTED.value if accept else MatchStatus.REJECTED.value
        result = await db.execute(
            update(MatchedCreator)
            .where(
                MatchedCreator.id == record.id,
                MatchedCreator.status == MatchStatus.INVITED.value,
            )
            .values(status=new_status, responded_at=_now())
        )
        if result.rowcount != 1:
            raise PreconditionError("Only pending invitations can be answered")
        await db.commit()

        logger.info("Creator %s answered invitation to promotion %s: %s", profile.id, promotion_id, new_status)
        await self.events.publish(
            events.INVITATION_RESPONDED,
            {"promotion_id": promotion_id, "creator_id": profile.id, "status": new_status},
        )
        return record

    async def list_applications(self, db: AsyncSession, profile: Optional[CreatorProfile]) -> list[MatchedCreator]:
        if profile is None:
            raise PreconditionError("profile required: create your profile first")
        result = await db.execute(
            select(MatchedCreator)
            .options(selectinload(MatchedCreator.promotion))
            .where(
                MatchedCreator.creator_id == profile.id,
                MatchedCreator.status.in_(HISTORY_STATUSES),
            )
            .order_by(MatchedCreator.applied_at.desc(), MatchedCreator.id.desc())
        )
        return list(result.scalars().all())

    async def list_applicants(self, db: AsyncSession, seller_id: str, promotion_id: int) -> list[MatchedCreator]:
        """Creators linked to a seller's request, best match first."""
        request = await self.promotions.get_seller_request(db, seller_id, promotion_id)
        result = await db.execute(
            select(MatchedCreator)
            .options(selectinload(MatchedCreator.creator))
            .where(MatchedCreator.promotion_id == request.id)
            .order_by(MatchedCreator.match_score.desc(), MatchedCreator.applied_at.asc(), MatchedCreator.id.asc())
        )
        return list(result.scalars().all())

    async def accept_application(
        self, db: AsyncSession, seller_id: str, promotion_id: int, creator_id: int
    ) -> MatchedCreator:
        request = await self.promotions.get_seller_request(db, seller_id, promotion_id)
        record = await self._get_record(db, request.id, creator_id)
        if record is None:
            raise NotFoundError("Creator not found in matched creators")
        if record.status != MatchStatus.APPLIED.value:
            raise PreconditionError("Can only accept creators who have applied")

        request_result = await db.execute(
            update(PromotionRequest)
            .where(
                PromotionRequest.id == request.id,
                PromotionRequest.status.in_(APPLICABLE_STATUSES),
            )
            .values(status=RequestStatus.ACCEPTED.value, accepted_creator_id=creator_id)
        )
        if request_result.rowcount != 1:
            await db.rollback()
            raise PreconditionError("promotion not open: a creator has already been accepted or the campaign closed")

        record_result = await db.execute(
            update(MatchedCreator)
            .where(
                MatchedCreator.id == record.id,
                MatchedCreator.status == MatchStatus.APPLIED.value,
            )
            .values(status=MatchStatus.ACCEPTED.value, responded_at=_now())
        )
        if record_result.rowcount != 1:
            await db.rollback()
            raise PreconditionError("Can only accept creators who have applied")
        await db.commit()

        logger.info("Seller %s accepted creator %s for promotion %s", seller_id, creator_id, promotion_id)
        await self.events.publish(
            events.APPLICATION_ACCEPTED,
            {"promotion_id": promotion_id, "creator_id": creator_id},
        )
        return record

    async def reject_application(
        self, db: AsyncSession, seller_id: str, promotion_id: int, creator_id: int
    ) -> MatchedCreator:
        request = await self.promotions.get_seller_request(db, seller_id, promotion_id)
        record = await self._get_record(db, request.id, creator_id)
        if record is None:
            raise NotFoundError("Creator not found in matched creators")

        result = await db.execute(
            update(MatchedCreator)
            .where(
                MatchedCreator.id == record.id,
                MatchedCreator.status == MatchStatus.APPLIED.value,
            )
            .values(status=MatchStatus.REJECTED.value, responded_at=_now())
        )
        if result.rowcount != 1:
            raise PreconditionError("Can only reject pending applications")
        await db.commit()

        logger.info("Seller %s rejected creator %s for promotion %s", seller_id, creator_id, promotion_id)
        await self.events.publish(
            events.APPLICATION_REJECTED,
            {"promotion_id": promotion_id, "creator_id": creator_id},
        )
        return record
