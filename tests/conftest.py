"""Global test fixtures and utilities for HabitFlow tests"""
import pytest
from datetime import date, datetime, timedelta, timezone

from habitflow.api.middleware import limiter
from habitflow.db import MemoryStore
from habitflow.models import HabitFrequency
from habitflow.services.container import ServiceContainer


# Friday, 12:00 UTC
FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
TODAY = FIXED_NOW.date()


class FixedClock:
    """Controllable clock passed wherever services read the current time"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


async def make_habit(
    services: ServiceContainer,
    user_id: str = "user-1",
    title: str = "Meditate",
    category: str = None,
    frequency: HabitFrequency = HabitFrequency.DAILY,
    timezone: str = "UTC"
):
    """Create a habit through the service layer"""
    return await services.habit_service.create_habit(
        user_id,
        title=title,
        category=category,
        frequency=frequency,
        timezone=timezone,
    )


# ============================================================================
# Store & Service Fixtures
# ============================================================================

@pytest.fixture
def clock():
    """Clock fixed at FIXED_NOW"""
    return FixedClock()


@pytest.fixture
def store():
    """Fresh in-memory store"""
    return MemoryStore()


@pytest.fixture
def services(store, clock):
    """Service container over the in-memory store with default rewards"""
    return ServiceContainer(store=store, clock=clock)


@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-1"


@pytest.fixture(autouse=True)
def disable_rate_limiting():
    """Tests hammer the API far beyond the production limit"""
    limiter.enabled = False
    yield
    limiter.enabled = True
