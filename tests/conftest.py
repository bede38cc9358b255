"""
Pytest configuration and fixtures for Glintup tests.

Provides:
- Async test database with SQLite
- Test client for API testing
- Factory fixtures for creating test data
- Fake delivery providers and word generators
"""

import os

# Must be set before glintup modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test-verify-token")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402
from datetime import date, datetime, timedelta  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import StaticPool  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from glintup.core.database import get_db  # noqa: E402
from glintup.core.datetime_utils import local_slot_to_utc, utc_now  # noqa: E402
from glintup.core.errors import TransientDeliveryError  # noqa: E402
from glintup.main import app  # noqa: E402
from glintup.models import Base  # noqa: E402
from glintup.models.outbox import OutboxJob, OutboxStatus  # noqa: E402
from glintup.models.subscriber import (  # noqa: E402
    Channel,
    CustomDeliveryTime,
    DeliveryMode,
    DeliverySettings,
    Subscriber,
)
from glintup.models.vocabulary import VocabularyWord, WordHistoryEntry, WordSource  # noqa: E402
from glintup.schemas.llm import GeneratedWord  # noqa: E402
from glintup.services.whatsapp_service import SendResult  # noqa: E402

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database override."""
    from glintup.core.rate_limit import limiter

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    # Reset rate limiter storage before each test
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return dict(ADMIN_HEADERS)


# ============================================================================
# Factory Fixtures
# ============================================================================
# Factories commit: the services under test commit and roll back per
# subscriber or per job, which would discard merely flushed fixtures.


@pytest_asyncio.fixture
async def subscriber_factory(db_session: AsyncSession):
    """Factory for creating test subscribers, optionally with settings."""

    async def _create_subscriber(
        phone_number: str | None = "+919876543210",
        email: str | None = None,
        category: str = "business",
        subcategory: str | None = None,
        is_pro: bool = False,
        is_active: bool = True,
        preferred_channel: Channel = Channel.WHATSAPP,
        first_name: str | None = "Asha",
        with_settings: bool = True,
        mode: DeliveryMode = DeliveryMode.AUTO,
        words_per_day: int = 3,
        timezone: str = "Asia/Kolkata",
        window: tuple[str, str] = ("09:00", "21:00"),
        custom_times: list[str] | None = None,
    ) -> Subscriber:
        subscriber = Subscriber(
            phone_number=phone_number,
            email=email,
            category=category,
            subcategory=subcategory,
            is_pro=is_pro,
            is_active=is_active,
            preferred_channel=preferred_channel,
            first_name=first_name,
            created_at=utc_now(),
        )
        db_session.add(subscriber)
        await db_session.flush()

        if with_settings:
            db_session.add(
                DeliverySettings(
                    subscriber_id=subscriber.id,
                    mode=mode,
                    words_per_day=words_per_day,
                    timezone=timezone,
                    auto_window_start=window[0],
                    auto_window_end=window[1],
                    updated_at=utc_now(),
                )
            )
        for position, value in enumerate(custom_times or [], start=1):
            db_session.add(
                CustomDeliveryTime(subscriber_id=subscriber.id, position=position, time=value)
            )
        await db_session.commit()

        # Reload so the selectin relationships reflect what was just written
        await db_session.refresh(subscriber, ["delivery_settings", "custom_times"])
        return subscriber

    return _create_subscriber


@pytest_asyncio.fixture
async def word_factory(db_session: AsyncSession):
    """Factory for creating inventory words."""
    counter = {"n": 0}

    async def _create_word(
        word: str | None = None,
        category: str = "business",
        subcategory: str | None = None,
        definition: str = "A test definition.",
        example: str = "A test example sentence.",
    ) -> VocabularyWord:
        counter["n"] += 1
        row = VocabularyWord(
            word=word or f"testword{counter['n']}",
            definition=definition,
            example=example,
            category=category,
            subcategory=subcategory,
            # Strictly increasing so inventory order is deterministic
            created_at=datetime(2026, 1, 1) + timedelta(minutes=counter["n"]),
        )
        db_session.add(row)
        await db_session.commit()
        return row

    return _create_word


@pytest_asyncio.fixture
async def history_factory(db_session: AsyncSession):
    """Factory for recording words a subscriber has already received."""

    async def _create_history(
        subscriber: Subscriber,
        words: list[str],
        category: str | None = None,
        subcategory: str | None = None,
        source: WordSource = WordSource.DATABASE,
    ) -> list[WordHistoryEntry]:
        entries = [
            WordHistoryEntry(
                subscriber_id=subscriber.id,
                word_ref=f"test:{w}",
                word=w,
                category=category or subscriber.category,
                subcategory=subcategory or subscriber.subcategory,
                source=source,
                sent_at=utc_now(),
            )
            for w in words
        ]
        db_session.add_all(entries)
        await db_session.commit()
        return entries

    return _create_history


@pytest_asyncio.fixture
async def job_factory(db_session: AsyncSession):
    """Factory for creating outbox jobs."""

    async def _create_job(
        subscriber: Subscriber,
        slot_date: date | None = None,
        slot_time: str = "09:00",
        send_at: datetime | None = None,
        status: OutboxStatus = OutboxStatus.QUEUED,
        channel: Channel = Channel.WHATSAPP,
        attempts: int = 0,
        position: int = 1,
        last_attempt_at: datetime | None = None,
        created_at: datetime | None = None,
        word: str = "leverage",
    ) -> OutboxJob:
        slot_date = slot_date or utc_now().date()
        job = OutboxJob(
            subscriber_id=subscriber.id,
            channel=channel,
            word_ref=f"test:{word}",
            payload={
                "word_ref": f"test:{word}",
                "word": word,
                "definition": "To use something to maximum advantage.",
                "example": "We can leverage our network.",
                "category": subscriber.category,
                "source": "database",
                "position": position,
                "total_words": 3,
                "first_name": subscriber.first_name,
            },
            slot_date=slot_date,
            slot_time=slot_time,
            send_at=send_at or local_slot_to_utc(slot_date, slot_time, "UTC"),
            status=status,
            attempts=attempts,
            last_attempt_at=last_attempt_at,
            created_at=created_at or utc_now(),
        )
        db_session.add(job)
        await db_session.commit()
        return job

    return _create_job


# ============================================================================
# Fakes
# ============================================================================


class FakeProvider:
    """Delivery provider double that records sends and can raise on demand."""

    def __init__(self, name: str, error: Exception | None = None) -> None:
        self.name = name
        self.error = error
        self.sent: list[tuple[str | None, dict[str, Any]]] = []

    async def send(self, to: str | None, payload: dict[str, Any]) -> SendResult:
        if self.error is not None:
            raise self.error
        self.sent.append((to, payload))
        return SendResult(
            provider=self.name,
            provider_message_id=f"wamid.{uuid.uuid4().hex[:12]}",
            recipient=to or "",
        )


class FakeGenerator:
    """Word generator double returning canned entries or raising."""

    def __init__(self, words: list[str] | None = None, error: Exception | None = None) -> None:
        self.words = words or []
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def generate_words(
        self,
        category: str,
        count: int,
        excluding: list[str],
        subcategory: str | None = None,
    ) -> list[GeneratedWord]:
        self.calls.append({"category": category, "count": count, "excluding": excluding})
        if self.error is not None:
            raise self.error
        return [
            GeneratedWord(
                word=w,
                definition=f"Definition of {w}.",
                example=f"An example using {w}.",
                category=category,
            )
            for w in self.words[:count]
        ]


@pytest.fixture
def fake_providers():
    """Factory for a channel -> FakeProvider mapping."""

    def _create(
        whatsapp_error: Exception | None = None,
        email_error: Exception | None = None,
    ) -> dict[Channel, FakeProvider]:
        return {
            Channel.WHATSAPP: FakeProvider("whatsapp", whatsapp_error),
            Channel.EMAIL: FakeProvider("email", email_error),
        }

    return _create


@pytest.fixture
def fake_generator():
    return FakeGenerator


@pytest.fixture
def transient_error():
    def _create(reason: str = "provider-unavailable", status_code: int | None = 503):
        return TransientDeliveryError(
            "provider down", provider="whatsapp", reason=reason, status_code=status_code
        )

    return _create
