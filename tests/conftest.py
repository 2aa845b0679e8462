"""
Shared pytest fixtures for the library event service tests.

These fixtures provide consistent test data and fresh state for every test.
"""

from pathlib import Path

import pytest
import pytest_asyncio

from event_driven.audit import AuditLog
from event_driven.event_bus import EventBus, InMemoryBroker
from event_driven.runtime import Runtime
from shared.channels import EmailChannel
from shared.data_store import DataStore
from shared.models import Book
from shared.settings import Settings


@pytest.fixture
def data_dir() -> Path:
    """Path to the seed data directory."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def data_store(data_dir: Path) -> DataStore:
    """
    Fresh DataStore instance for each test.

    Uses the real JSON fixtures but creates a new instance
    so tests don't interfere with each other.
    """
    return DataStore(data_dir=data_dir)


@pytest.fixture
def email_channel() -> EmailChannel:
    """Fresh recording EmailChannel for each test."""
    return EmailChannel(fail_rate=0.0)


@pytest.fixture
def audit_log() -> AuditLog:
    return AuditLog()


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    """Settings independent of the environment."""
    return Settings(
        _env_file=None,
        broker_backend="memory",
        email_backend="log",
        data_dir=data_dir,
        push_keepalive_seconds=0.05,
    )


@pytest_asyncio.fixture
async def event_bus():
    """Connected event bus on a fresh in-memory broker."""
    bus = EventBus(InMemoryBroker(), queue_size=100)
    await bus.connect()
    yield bus
    await bus.close()


@pytest_asyncio.fixture
async def runtime(settings: Settings, data_store: DataStore, email_channel: EmailChannel):
    """A started runtime on the in-memory broker."""
    rt = Runtime(settings, broker=InMemoryBroker(), data_store=data_store, email_channel=email_channel)
    await rt.start()
    yield rt
    await rt.stop()


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def ada() -> dict:
    """A reader who follows Science."""
    return {"user_id": "u-ada", "user_email": "ada@example.com", "user_name": "Ada"}


@pytest.fixture
def grace() -> dict:
    return {"user_id": "u-grace", "user_email": "grace@example.com", "user_name": "Grace"}


@pytest.fixture
def linus() -> dict:
    return {"user_id": "u-linus", "user_email": "linus@example.com", "user_name": "Linus"}


# =============================================================================
# Books
# =============================================================================

@pytest.fixture
def cosmos() -> Book:
    """A Science book that is not in the seed data."""
    return Book(
        book_id="book-101",
        title="Cosmos",
        author="Carl Sagan",
        category="Science",
        cover_image_url="https://covers.example.com/cosmos.jpg",
        total_copies=2,
        available_copies=2,
    )


@pytest.fixture
def last_copy_book_id() -> str:
    """Seeded 'Design Patterns': 1 of 3 copies available."""
    return "book-003"


@pytest.fixture
def single_copy_book_id() -> str:
    """Seeded 'The Selfish Gene': 1 of 1 copies available."""
    return "book-004"


@pytest.fixture
def unavailable_book_id() -> str:
    """Seeded 'A Brief History of Time': 0 of 4 copies available."""
    return "book-005"
