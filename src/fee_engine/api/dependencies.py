"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.config import Settings, get_settings
from fee_engine.database import init_db
from fee_engine.events import AsyncEventEmitter
from fee_engine.services import (
    CallbackListener,
    FeeService,
    PaymentGatewayRouter,
    PermitService,
    RouterConfig,
)


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    factory = request.app.state.session_factory
    if factory is None:
        _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_emitter(request: Request) -> AsyncEventEmitter:
    return request.app.state.emitter


def get_callback_listener(request: Request) -> CallbackListener:
    return request.app.state.callback_listener


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Emitter = Annotated[AsyncEventEmitter, Depends(get_emitter)]
Listener = Annotated[CallbackListener, Depends(get_callback_listener)]


def get_payment_router(
    request: Request,
    db: DbSession,
    settings: AppSettings,
    emitter: Emitter,
) -> PaymentGatewayRouter:
    return PaymentGatewayRouter(
        db,
        request.app.state.gateways,
        config=RouterConfig.from_settings(settings),
        emitter=emitter,
    )


def get_fee_service(db: DbSession, settings: AppSettings, emitter: Emitter) -> FeeService:
    return FeeService(db, emitter=emitter, currency=settings.currency)


def get_permit_service(db: DbSession) -> PermitService:
    return PermitService(db)


Router = Annotated[PaymentGatewayRouter, Depends(get_payment_router)]
Fees = Annotated[FeeService, Depends(get_fee_service)]
Permits = Annotated[PermitService, Depends(get_permit_service)]
