import enum

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from creator_match.db.database import Base


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE_NOW = "AVAILABLE_NOW"
    LIMITED_AVAILABILITY = "LIMITED_AVAILABILITY"
    NOT_AVAILABLE = "NOT_AVAILABLE"


class CreatorProfile(Base):
    __tablename__ = "creator_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    instagram_username = Column(String, default="")

    follower_count = Column(Integer, default=0, index=True)
    engagement_rate = Column(Float, default=0.0)
    category = Column(String, index=True)
    promotion_types = Column(JSON, default=list)  # e.g. ["REELS", "WEBSITE_VISIT"]
    price_min = Column(Float)
    price_max = Column(Float)
    bio = Column(Text, default="")
    availability_status = Column(String)

    location = Column(JSON, default=dict)  # {"district": ..., "city": ...}
    collaboration_types = Column(JSON, default=list)
    portfolio_links = Column(JSON, default=list)
    past_experience = Column(Text)
    willing_to_travel = Column(String)  # YES / NO / DEPENDS

    total_promotions = Column(Integer, default=0)
    successful_promotions = Column(Integer, default=0)
    average_rating = Column(Float, default=0.0)

    # Derived insight snapshot, rewritten on every profile write
    engagement_quality = Column(String, default="Medium")
    audience_authenticity = Column(String, default="Medium")
    strengths = Column(JSON, default=list)
    profile_summary = Column(Text, default="")
    insight_score = Column(Integer, default=50, index=True)
    last_analyzed = Column(DateTime)

    profile_completion_percentage = Column(Integer, default=0)
    onboarding_completed = Column(Boolean, default=False)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    applications = relationship("MatchedCreator", back_populates="creator")
