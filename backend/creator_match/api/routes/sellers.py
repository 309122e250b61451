from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Literal, Optional

from creator_match.api.deps import get_current_user_id
from creator_match.api.routes.creators import profile_to_dict, request_to_dict
from creator_match.db.database import get_db
from creator_match.services.applications import ApplicationService
from creator_match.services.promotions import PromotionService

router = APIRouter(prefix="/api/sellers", tags=["sellers"])

promotions = PromotionService()
applications = ApplicationService(promotion_service=promotions)


class Range(BaseModel):
    min: float = Field(ge=0)
    max: float = Field(ge=0)


class PromotionRequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field("", max_length=1000)
    target_category: str
    promotion_types: list[str] = Field(min_length=1)
    follower_range: Range
    budget_range: Range
    campaign_goal: Optional[str] = None
    deadline: Optional[datetime] = None


class PromotionRequestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    target_category: Optional[str] = None
    promotion_types: Optional[list[str]] = Field(None, min_length=1)
    follower_range: Optional[Range] = None
    budget_range: Optional[Range] = None
    campaign_goal: Optional[str] = None
    deadline: Optional[datetime] = None


class StatusUpdate(BaseModel):
    status: Literal["COMPLETED", "CANCELLED"]


def _request_changes(fields: dict) -> dict:
    """Flatten range objects into the column names the promotion service uses."""
    changes = dict(fields)
    follower_range = changes.pop("follower_range", None)
    if follower_range is not None:
        changes["min_followers"] = int(follower_range["min"])
        changes["max_followers"] = int(follower_range["max"])
    budget_range = changes.pop("budget_range", None)
    if budget_range is not None:
        changes["budget_min"] = budget_range["min"]
        changes["budget_max"] = budget_range["max"]
    return changes


def _match_to_dict(match) -> dict:
    return {
        "creator_id": match.creator_id,
        "category": match.creator.category,
        "follower_count": match.creator.follower_count,
        "engagement_rate": match.creator.engagement_rate,
        "profile_summary": match.creator.profile_summary,
        "match_score": match.match_score,
        "match_reason": match.match_reason,
        "scores": match.scores,
        "ranked_at": match.ranked_at,
    }


@router.post("/requests", status_code=201)
async def create_request(
    body: PromotionRequestCreate,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    request = await promotions.create_request(db, seller_id, _request_changes(body.model_dump()))
    matches = await promotions.ranking.list_matches(db, request)
    return {**request_to_dict(request), "matched_creators_count": len(matches)}


@router.get("/requests")
async def list_requests(seller_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    requests = await promotions.list_seller_requests(db, seller_id)
    return {"requests": [request_to_dict(r) for r in requests], "count": len(requests)}


@router.get("/requests/{request_id}")
async def get_request(
    request_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    request = await promotions.get_seller_request(db, seller_id, request_id)
    return request_to_dict(request)


@router.put("/requests/{request_id}")
async def update_request(
    request_id: int,
    body: PromotionRequestUpdate,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    changes = _request_changes(body.model_dump(exclude_unset=True))
    request = await promotions.update_request(db, seller_id, request_id, changes)
    matches = await promotions.ranking.list_matches(db, request)
    return {**request_to_dict(request), "matched_creators_count": len(matches)}


@router.delete("/requests/{request_id}")
async def delete_request(
    request_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await promotions.delete_request(db, seller_id, request_id)
    return {"status": "deleted"}


@router.get("/requests/{request_id}/matches")
async def list_matches(
    request_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    request = await promotions.get_seller_request(db, seller_id, request_id)
    matches = await promotions.ranking.list_matches(db, request)
    return {"matches": [_match_to_dict(m) for m in matches], "count": len(matches)}


@router.get("/requests/{request_id}/match-details/{creator_id}")
async def get_match_details(
    request_id: int,
    creator_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    request = await promotions.get_seller_request(db, seller_id, request_id)
    details = await promotions.ranking.explain_match(db, request, creator_id)
    creator = details.pop("creator")
    return {"creator": profile_to_dict(creator), "match_details": details}


@router.get("/requests/{request_id}/applicants")
async def list_applicants(
    request_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    records = await applications.list_applicants(db, seller_id, request_id)
    return {
        "applicants": [
            {
                "creator_id": record.creator_id,
                "category": record.creator.category,
                "follower_count": record.creator.follower_count,
                "engagement_rate": record.creator.engagement_rate,
                "profile_summary": record.creator.profile_summary,
                "strengths": record.creator.strengths,
                "match_score": record.match_score,
                "match_reason": record.match_reason,
                "status": record.status,
                "applied_at": record.applied_at,
                "responded_at": record.responded_at,
            }
            for record in records
        ],
        "count": len(records),
    }


@router.post("/requests/{request_id}/invite/{creator_id}", status_code=201)
async def invite_creator(
    request_id: int,
    creator_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    record = await applications.invite_creator(db, seller_id, request_id, creator_id)
    return {"status": record.status, "creator_id": record.creator_id, "match_score": record.match_score}


@router.post("/requests/{request_id}/accept/{creator_id}")
async def accept_creator(
    request_id: int,
    creator_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await applications.accept_application(db, seller_id, request_id, creator_id)
    return {"status": "accepted"}


@router.post("/requests/{request_id}/reject/{creator_id}")
async def reject_creator(
    request_id: int,
    creator_id: int,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await applications.reject_application(db, seller_id, request_id, creator_id)
    return {"status": "rejected"}


@router.put("/requests/{request_id}/status")
async def update_status(
    request_id: int,
    body: StatusUpdate,
    seller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    request = await promotions.update_request_status(db, seller_id, request_id, body.status)
    return request_to_dict(request)
