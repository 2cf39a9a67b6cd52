"""Integration test fixtures: the FastAPI app over the in-memory database."""

from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fee_engine.api.app import create_app
from fee_engine.config import Settings, get_settings
from fee_engine.services.webhook_signature import compute_signature

WEBHOOK_SECRET = "whsec_test_secret"

TEST_SETTINGS = Settings(
    database_url="sqlite+aiosqlite:///:memory:",
    currency="PHP",
    host="127.0.0.1",
    port=8000,
    debug=False,
    webhook_secret=WEBHOOK_SECRET,
    stale_attempt_hours=24,
)


def today() -> date:
    """The API runs on the real clock, so dates are relative to now."""
    return datetime.now(timezone.utc).date()


def signed(body: bytes) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Signature": compute_signature(body, WEBHOOK_SECRET),
    }


@pytest_asyncio.fixture
async def app(session_factory, gateways):
    """App wired to the test database with a running callback listener."""
    app = create_app(session_factory=session_factory, gateways=gateways)
    app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    listener = app.state.callback_listener
    await listener.start()
    yield app
    await listener.stop()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def api_fee(make_fee):
    """Fee factory with due dates relative to the real clock."""

    async def _make(amount="1000.00", days_until_due=15, **kwargs):
        return await make_fee(amount, due_date=today() + timedelta(days=days_until_due), **kwargs)

    return _make
