"""Pytest fixtures for fee engine tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from fee_engine.database import create_schema, make_session_factory
from fee_engine.events import AsyncEventEmitter, DomainEvent
from fee_engine.gateways import (
    BankTransferStubGateway,
    CardMethod,
    CardStubGateway,
    WalletMethod,
    WalletStubGateway,
)
from fee_engine.models import ConstructionPermit, Fee, PaymentAttempt, Receipt
from fee_engine.models.enums import GatewayCategory, WalletBrand
from fee_engine.services import PaymentGatewayRouter

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock for ledger-dependent tests
NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)
TODAY = NOW.date()

GOOD_CARD = "4242424242424242"
DECLINED_CARD = "4000000000000002"
INSUFFICIENT_FUNDS_CARD = "4000000000009995"


def fixed_clock() -> datetime:
    return NOW


def card(number: str = GOOD_CARD, **overrides) -> CardMethod:
    fields = {
        "card_number": number,
        "exp_month": 12,
        "exp_year": 2030,
        "cvc": "123",
        "cardholder_name": "Juan Dela Cruz",
    }
    fields.update(overrides)
    return CardMethod(**fields)


def wallet(brand: WalletBrand = WalletBrand.GCASH) -> WalletMethod:
    return WalletMethod(wallet=brand, phone_number="09171234567")


@pytest_asyncio.fixture
async def engine():
    """Create test database engine with a fresh schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gateways():
    return {
        GatewayCategory.CARD: CardStubGateway(),
        GatewayCategory.WALLET: WalletStubGateway(),
        GatewayCategory.BANK_TRANSFER: BankTransferStubGateway(),
    }


@pytest.fixture
def recorded_events() -> list[DomainEvent]:
    return []


@pytest.fixture
def emitter(recorded_events) -> AsyncEventEmitter:
    emitter = AsyncEventEmitter()
    emitter.on_all(recorded_events.append)
    return emitter


@pytest.fixture
def router(session, gateways, emitter) -> PaymentGatewayRouter:
    return PaymentGatewayRouter(session, gateways, emitter=emitter, clock=fixed_clock)


@pytest.fixture
def make_fee(session):
    """Factory for committed fees."""

    async def _make(
        amount: str | Decimal = "1000.00",
        due_date: date | None = None,
        status: str = "unpaid",
        paid_amount: str | Decimal = "0",
        fee_type: str = "monthly",
        **kwargs,
    ) -> Fee:
        fee = Fee(
            title=kwargs.pop("title", "Monthly association dues"),
            fee_type=fee_type,
            amount=Decimal(amount),
            due_date=due_date or TODAY + timedelta(days=15),
            status=status,
            paid_amount=Decimal(paid_amount),
            **kwargs,
        )
        session.add(fee)
        await session.commit()
        return fee

    return _make


@pytest.fixture
def make_permit(session):
    """Factory for committed permits, optionally with an unpaid road fee."""

    async def _make(
        status: str = "approved",
        road_fee_amount: str | Decimal | None = "500.00",
        with_road_fee: bool = True,
    ) -> tuple[ConstructionPermit, Fee | None]:
        permit = ConstructionPermit(
            household_id=uuid4(),
            contractor_name="BuildRight Co.",
            status=status,
            road_fee_amount=Decimal(road_fee_amount) if road_fee_amount else None,
        )
        session.add(permit)
        await session.flush()

        fee = None
        if with_road_fee and road_fee_amount:
            fee = Fee(
                household_id=permit.household_id,
                title="Construction road fee",
                fee_type="construction_road_fee",
                amount=Decimal(road_fee_amount),
                due_date=TODAY + timedelta(days=7),
                status="unpaid",
                paid_amount=Decimal("0"),
                linked_permit_id=permit.id,
            )
            session.add(fee)
        await session.commit()
        return permit, fee

    return _make


@pytest.fixture
def make_attempt(session):
    """Factory for an attempt already holding the fee's lock in ``processing``."""

    async def _make(
        fee: Fee,
        amount: str | Decimal,
        late_fee: str | Decimal = "0",
        category: str = "card",
        intent_id: str | None = None,
    ) -> PaymentAttempt:
        attempt = PaymentAttempt(
            target_type="fee",
            target_id=fee.id,
            fee_id=fee.id,
            category=category,
            payment_method=category,
            method_description=f"{category} payment",
            status="processing",
            amount=Decimal(amount),
            currency="PHP",
            intent_id=intent_id or f"pi_test_{uuid4().hex[:12]}",
            prior_fee_status=fee.status,
            late_fee_at_payment=Decimal(late_fee),
            paid_before=Decimal(fee.paid_amount),
        )
        fee.status = "processing"
        session.add(attempt)
        await session.commit()
        return attempt

    return _make


async def count_rows(session: AsyncSession, model, *criteria) -> int:
    stmt = select(func.count()).select_from(model)
    if criteria:
        stmt = stmt.where(*criteria)
    return await session.scalar(stmt) or 0


async def receipts_for(session: AsyncSession, attempt_id) -> list[Receipt]:
    result = await session.execute(
        select(Receipt).where(Receipt.payment_attempt_id == attempt_id)
    )
    return list(result.scalars().all())
