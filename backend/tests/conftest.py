import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from creator_match.db.database import Base, enable_sqlite_savepoints, get_db
from creator_match.models import creator_profile, promotion  # noqa: F401
from creator_match.services.applications import ApplicationService
from creator_match.services.profiles import ProfileService
from creator_match.services.promotions import PromotionService


class RecordingEventSink:
    def __init__(self):
        self.events = []

    async def publish(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def event_sink():
    return RecordingEventSink()


@pytest.fixture
def profile_service(event_sink):
    return ProfileService(event_sink=event_sink)


@pytest.fixture
def promotion_service(profile_service, event_sink):
    return PromotionService(profile_service=profile_service, event_sink=event_sink)


@pytest.fixture
def application_service(event_sink, promotion_service):
    return ApplicationService(event_sink=event_sink, promotion_service=promotion_service)


def profile_attrs(**overrides) -> dict:
    attrs = {
        "follower_count": 45_000,
        "engagement_rate": 4.0,
        "category": "Fashion",
        "promotion_types": ["Reels", "Stories"],
        "price_min": 500.0,
        "price_max": 2000.0,
        "bio": "Slow fashion and thrift hauls from Pune",
        "availability_status": "AVAILABLE_NOW",
    }
    attrs.update(overrides)
    return attrs


def request_attrs(**overrides) -> dict:
    attrs = {
        "title": "Summer collection launch",
        "description": "Three reels featuring the new linen range",
        "target_category": "Fashion",
        "promotion_types": ["REELS"],
        "min_followers": 10_000,
        "max_followers": 100_000,
        "budget_min": 1000.0,
        "budget_max": 5000.0,
        "campaign_goal": "REACH",
    }
    attrs.update(overrides)
    return attrs


@pytest.fixture
def make_profile(db, profile_service):
    counter = {"n": 0}

    async def _make(user_id=None, **overrides):
        counter["n"] += 1
        return await profile_service.create_profile(
            db, user_id or f"creator-{counter['n']}", profile_attrs(**overrides)
        )

    return _make


@pytest.fixture
def make_request(db, promotion_service):
    async def _make(seller_id="seller-1", created_at=None, status=None, **overrides):
        request = await promotion_service.create_request(db, seller_id, request_attrs(**overrides))
        if created_at is not None or status is not None:
            if created_at is not None:
                request.created_at = created_at
            if status is not None:
                request.status = status
            await db.commit()
        return request

    return _make


@pytest.fixture
async def client(session_factory):
    from creator_match.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
