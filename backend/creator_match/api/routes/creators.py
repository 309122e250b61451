from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Optional

from creator_match.api.deps import get_current_user_id
from creator_match.db.database import get_db
from creator_match.errors import NotFoundError
from creator_match.models.creator_profile import AvailabilityStatus, CreatorProfile
from creator_match.models.promotion import MatchedCreator, PromotionRequest
from creator_match.services.applications import ApplicationService
from creator_match.services.matching import MatchingService
from creator_match.services.profiles import ProfileService

router = APIRouter(prefix="/api/creators", tags=["creators"])

profiles = ProfileService()
matching = MatchingService()
applications = ApplicationService()


class PriceRange(BaseModel):
    min: float = Field(ge=0)
    max: float = Field(ge=0)


class Location(BaseModel):
    district: Optional[str] = None
    city: Optional[str] = None


class ProfileUpdate(BaseModel):
    instagram_username: Optional[str] = None
    follower_count: Optional[int] = Field(None, ge=0)
    engagement_rate: Optional[float] = Field(None, ge=0, le=100)
    category: Optional[str] = None
    promotion_types: Optional[list[str]] = None
    price_range: Optional[PriceRange] = None
    bio: Optional[str] = Field(None, max_length=500)
    availability_status: Optional[AvailabilityStatus] = None
    location: Optional[Location] = None
    collaboration_types: Optional[list[str]] = None
    portfolio_links: Optional[list[str]] = None
    past_experience: Optional[str] = None
    willing_to_travel: Optional[str] = None


class ProfileCreate(ProfileUpdate):
    follower_count: int = Field(ge=0)
    engagement_rate: float = Field(ge=0, le=100)
    category: str
    promotion_types: list[str] = Field(min_length=1)
    price_range: PriceRange


class InvitationResponse(BaseModel):
    accept: bool


def _profile_changes(body: ProfileUpdate) -> dict:
    """Flatten a request body into the attribute names the profile service uses."""
    changes = body.model_dump(exclude_unset=True, mode="json")
    price_range = changes.pop("price_range", None)
    if price_range is not None:
        changes["price_min"] = price_range["min"]
        changes["price_max"] = price_range["max"]
    return changes


def profile_to_dict(profile: CreatorProfile) -> dict:
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "instagram_username": profile.instagram_username,
        "follower_count": profile.follower_count,
        "engagement_rate": profile.engagement_rate,
        "category": profile.category,
        "promotion_types": profile.promotion_types,
        "price_range": {"min": profile.price_min, "max": profile.price_max},
        "bio": profile.bio,
        "availability_status": profile.availability_status,
        "location": profile.location,
        "collaboration_types": profile.collaboration_types,
        "portfolio_links": profile.portfolio_links,
        "past_experience": profile.past_experience,
        "willing_to_travel": profile.willing_to_travel,
        "total_promotions": profile.total_promotions,
        "successful_promotions": profile.successful_promotions,
        "average_rating": profile.average_rating,
        "insights": {
            "engagement_quality": profile.engagement_quality,
            "audience_authenticity": profile.audience_authenticity,
            "strengths": profile.strengths,
            "profile_summary": profile.profile_summary,
            "score": profile.insight_score,
            "last_analyzed": profile.last_analyzed,
        },
        "profile_completion_percentage": profile.profile_completion_percentage,
        "onboarding_completed": profile.onboarding_completed,
    }


def request_to_dict(request: PromotionRequest) -> dict:
    return {
        "id": request.id,
        "seller_id": request.seller_id,
        "title": request.title,
        "description": request.description,
        "target_category": request.target_category,
        "promotion_types": request.promotion_types,
        "follower_range": {"min": request.min_followers, "max": request.max_followers},
        "budget_range": {"min": request.budget_min, "max": request.budget_max},
        "campaign_goal": request.campaign_goal,
        "status": request.status,
        "accepted_creator_id": request.accepted_creator_id,
        "deadline": request.deadline,
        "completed_at": request.completed_at,
        "created_at": request.created_at,
    }


def _application_to_dict(record: MatchedCreator) -> dict:
    return {
        "promotion_id": record.promotion_id,
        "creator_id": record.creator_id,
        "match_score": record.match_score,
        "match_reason": record.match_reason,
        "status": record.status,
        "applied_at": record.applied_at,
        "responded_at": record.responded_at,
    }


@router.get("/profile")
async def get_profile(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    profile = await profiles.find_profile(db, user_id)
    if not profile:
        raise NotFoundError("Profile not found. Please create your creator profile.")
    return profile_to_dict(profile)


@router.post("/profile", status_code=201)
async def create_profile(
    body: ProfileCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await profiles.create_profile(db, user_id, _profile_changes(body))
    return profile_to_dict(profile)


@router.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await profiles.update_profile(db, user_id, _profile_changes(body))
    return profile_to_dict(profile)


@router.get("/promotions")
async def get_matching_promotions(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await profiles.find_profile(db, user_id)
    result = await matching.find_matching_requests(db, profile, page=page, limit=limit)
    return {
        "promotions": [
            {**request_to_dict(item["request"]), "has_applied": item["has_applied"]}
            for item in result["items"]
        ],
        "total": result["total"],
        "page": result["page"],
        "limit": result["limit"],
        "pages": result["pages"],
    }


@router.post("/promotions/{promotion_id}/apply")
async def apply_to_promotion(
    promotion_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await profiles.find_profile(db, user_id)
    result = await applications.apply_to_promotion(db, profile, promotion_id)
    return {
        "status": "applied",
        "application": _application_to_dict(result.record),
        "request_transitioned": result.request_transitioned,
    }


@router.get("/applications")
async def get_applications(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    profile = await profiles.find_profile(db, user_id)
    records = await applications.list_applications(db, profile)
    return {
        "applications": [
            {
                "promotion": request_to_dict(record.promotion),
                "application_status": record.status,
                "applied_at": record.applied_at,
                "responded_at": record.responded_at,
            }
            for record in records
        ],
        "count": len(records),
    }


@router.post("/invitations/{promotion_id}/respond")
async def respond_to_invitation(
    promotion_id: int,
    body: InvitationResponse,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await profiles.find_profile(db, user_id)
    record = await applications.respond_to_invitation(db, profile, promotion_id, body.accept)
    return _application_to_dict(record)
