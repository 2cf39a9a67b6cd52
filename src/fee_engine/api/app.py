"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fee_engine.api.routes import (
    fees_router,
    health_router,
    payments_router,
    permits_router,
    webhooks_router,
)
from fee_engine.config import get_settings
from fee_engine.database import create_schema, dispose_db, init_db
from fee_engine.errors import (
    AttemptNotFoundError,
    FeeNotWaivableError,
    InvalidTransitionError,
    PaymentEngineError,
    PaymentInProgressError,
    TargetNotFoundError,
    ValidationError,
    WorkerPassNotAllowedError,
)
from fee_engine.events import AsyncEventEmitter
from fee_engine.gateways import GatewayAdapter, GatewayCallback, build_gateways
from fee_engine.models.enums import GatewayCategory
from fee_engine.services import CallbackListener, PaymentGatewayRouter, RouterConfig

logger = logging.getLogger(__name__)


def _callback_handler(app: FastAPI):
    """Handler feeding queued callbacks to the router, one session each."""

    async def handle(callback: GatewayCallback) -> None:
        factory = app.state.session_factory
        async with factory() as session:
            router = PaymentGatewayRouter(
                session,
                app.state.gateways,
                config=RouterConfig.from_settings(get_settings()),
                emitter=app.state.emitter,
            )
            result = await router.handle_callback(callback)
            logger.info(
                "Callback for intent %s resolved attempt %s as %s",
                callback.intent_id,
                result.attempt_id,
                result.status,
            )

    return handle


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    if app.state.session_factory is None:
        engine, app.state.session_factory = init_db()
        if get_settings().debug:
            await create_schema(engine)
    await app.state.callback_listener.start()
    yield
    # Shutdown
    await app.state.callback_listener.stop()
    await dispose_db()


def _error(status_code: int, exc: Exception, code: str, **context) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code, "context": context or None},
    )


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    gateways: Mapping[GatewayCategory, GatewayAdapter] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        session_factory: Session factory to use instead of the global one.
        gateways: Gateway registry; defaults to the stub adapters.
    """
    app = FastAPI(
        title="Fee Engine API",
        description="Fee & permit payment lifecycle engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.session_factory = session_factory
    app.state.gateways = gateways if gateways is not None else build_gateways()
    app.state.emitter = AsyncEventEmitter()
    app.state.callback_listener = CallbackListener(_callback_handler(app))

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(422, exc, "VALIDATION_ERROR", errors=exc.errors)

    @app.exception_handler(PaymentInProgressError)
    async def in_progress_handler(request: Request, exc: PaymentInProgressError) -> JSONResponse:
        return _error(
            409,
            exc,
            "PAYMENT_IN_PROGRESS",
            fee_id=str(exc.fee_id),
            attempt_id=str(exc.attempt_id) if exc.attempt_id else None,
        )

    @app.exception_handler(TargetNotFoundError)
    async def target_not_found_handler(request: Request, exc: TargetNotFoundError) -> JSONResponse:
        return _error(404, exc, "NOT_FOUND", target_type=exc.target_type)

    @app.exception_handler(AttemptNotFoundError)
    async def attempt_not_found_handler(request: Request, exc: AttemptNotFoundError) -> JSONResponse:
        return _error(404, exc, "NOT_FOUND")

    @app.exception_handler(WorkerPassNotAllowedError)
    async def worker_pass_handler(request: Request, exc: WorkerPassNotAllowedError) -> JSONResponse:
        return _error(409, exc, "WORKER_PASS_NOT_ALLOWED", permit_status=exc.permit_status)

    @app.exception_handler(FeeNotWaivableError)
    async def not_waivable_handler(request: Request, exc: FeeNotWaivableError) -> JSONResponse:
        return _error(409, exc, "FEE_NOT_WAIVABLE")

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return _error(409, exc, "INVALID_TRANSITION")

    @app.exception_handler(PaymentEngineError)
    async def engine_error_handler(request: Request, exc: PaymentEngineError) -> JSONResponse:
        return _error(400, exc, "ENGINE_ERROR")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(fees_router, prefix="/api/v1")
    app.include_router(payments_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")
    app.include_router(permits_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
