import enum

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from creator_match.db.database import Base


class RequestStatus(str, enum.Enum):
    OPEN = "OPEN"
    CREATOR_INTERESTED = "CREATOR_INTERESTED"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class MatchStatus(str, enum.Enum):
    APPLIED = "APPLIED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    INVITED = "INVITED"


# Statuses under which a request still takes applications
APPLICABLE_STATUSES = (RequestStatus.OPEN.value, RequestStatus.CREATOR_INTERESTED.value)


class PromotionRequest(Base):
    __tablename__ = "promotion_requests"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")

    target_category = Column(String, nullable=False, index=True)
    min_followers = Column(Integer, default=0)
    max_followers = Column(Integer, default=0)
    budget_min = Column(Float, default=0.0)
    budget_max = Column(Float, default=0.0)
    campaign_goal = Column(String)  # REACH / TRAFFIC / SALES

    status = Column(String, default=RequestStatus.OPEN.value, nullable=False, index=True)
    accepted_creator_id = Column(Integer, ForeignKey("creator_profiles.id"))
    deadline = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)

    types = relationship(
        "PromotionRequestType",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    matched_creators = relationship(
        "MatchedCreator", back_populates="promotion", cascade="all, delete-orphan"
    )
    suggestions = relationship(
        "CreatorMatch", back_populates="promotion", cascade="all, delete-orphan"
    )

    @property
    def promotion_types(self) -> list[str]:
        return [t.promotion_type for t in self.types]


class PromotionRequestType(Base):
    __tablename__ = "promotion_request_types"
    __table_args__ = (UniqueConstraint("request_id", "promotion_type"),)

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("promotion_requests.id"), nullable=False, index=True)
    promotion_type = Column(String, nullable=False, index=True)

    request = relationship("PromotionRequest", back_populates="types")


class MatchedCreator(Base):
    __tablename__ = "matched_creators"
    __table_args__ = (UniqueConstraint("promotion_id", "creator_id", name="uq_match_promotion_creator"),)

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotion_requests.id"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("creator_profiles.id"), nullable=False, index=True)
    match_score = Column(Integer, nullable=False)
    match_reason = Column(Text, nullable=False)
    status = Column(String, nullable=False)
    applied_at = Column(DateTime)
    responded_at = Column(DateTime)

    promotion = relationship("PromotionRequest", back_populates="matched_creators")
    creator = relationship("CreatorProfile", back_populates="applications")


class CreatorMatch(Base):
    """A ranked creator suggestion for a seller's request.

    Rebuilt whenever the request is created or edited. Kept apart from
    MatchedCreator so suggestions never count as applications.
    """

    __tablename__ = "creator_matches"
    __table_args__ = (UniqueConstraint("promotion_id", "creator_id", name="uq_suggestion_promotion_creator"),)

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotion_requests.id"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("creator_profiles.id"), nullable=False, index=True)
    match_score = Column(Integer, nullable=False)
    match_reason = Column(Text, nullable=False)
    scores = Column(JSON, default=dict)  # per-factor 0-100 scores
    ranked_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    promotion = relationship("PromotionRequest", back_populates="suggestions")
    creator = relationship("CreatorProfile")
