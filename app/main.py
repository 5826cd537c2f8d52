import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api.dependencies import Container, build_container
from app.api.routers.bookings import router as bookings_router
from app.api.routers.health import router as health_router
from app.api.routers.margin_rules import router as margin_rules_router
from app.api.routers.rates import router as rates_router
from app.config import Settings, get_settings
from app.domain.errors import (
    BookingNotFoundError,
    BookingTimeoutError,
    DomainError,
    IdempotencyConflictError,
    InvariantViolationError,
    MarginRuleNotFoundError,
    SupplierRejectedError,
    SupplierTransientError,
    ValidationError,
)
from app.infrastructure.db.tables import metadata

logger = logging.getLogger(__name__)

# (status code, customer-facing message); the most specific class wins.
_ERROR_RESPONSES: list[tuple[type[DomainError], int, str | None]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, None),
    (BookingNotFoundError, status.HTTP_404_NOT_FOUND, None),
    (MarginRuleNotFoundError, status.HTTP_404_NOT_FOUND, None),
    (IdempotencyConflictError, status.HTTP_409_CONFLICT, None),
    (InvariantViolationError, status.HTTP_409_CONFLICT, None),
    (
        SupplierRejectedError,
        status.HTTP_409_CONFLICT,
        "This rate can no longer be booked. Please choose another rate.",
    ),
    (
        BookingTimeoutError,
        status.HTTP_202_ACCEPTED,
        "Your booking is still being confirmed. Please check back later.",
    ),
    (
        SupplierTransientError,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "The hotel supplier is temporarily unavailable. Please try again shortly.",
    ),
]


def _error_response(exc: DomainError) -> tuple[int, str | None]:
    for error_type, status_code, message in _ERROR_RESPONSES:
        if isinstance(exc, error_type):
            return status_code, message
    return status.HTTP_400_BAD_REQUEST, None


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    settings = settings or (container.settings if container else get_settings())

    # Configure structured logging
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_container = app.state.container
        if app_container.engine is not None:
            # Initialize DB tables (for dev/demo purposes)
            async with app_container.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        await app_container.runner.recover()
        yield
        # Cleanup
        await app_container.close()

    app = FastAPI(
        title="Hotel Booking Engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container or build_container(settings)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status_code, customer_message = _error_response(exc)
        log = logger.warning if status_code < 500 else logger.error
        log(
            "Domain error",
            extra={
                "code": exc.code,
                "path": request.url.path,
                "error_code": getattr(exc, "supplier_error_code", None),
            },
        )
        content = {"detail": exc.message, "code": exc.code}
        if customer_message:
            content["customer_message"] = customer_message
        if isinstance(exc, ValidationError):
            content["field"] = exc.field
        if isinstance(exc, (SupplierRejectedError, SupplierTransientError)):
            content["supplier_error_code"] = exc.supplier_error_code
        if isinstance(exc, BookingTimeoutError):
            content["correlation_id"] = exc.correlation_id
        return JSONResponse(status_code=status_code, content=content)

    # Global Exception Handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Global exception handler to prevent stack trace exposure to clients.
        All unhandled exceptions are logged internally and return a generic error message.
        """
        error_id = str(uuid.uuid4())

        logger.error(
            "Unhandled exception occurred",
            exc_info=exc,
            extra={
                "error_id": error_id,
                "path": request.url.path,
                "method": request.method,
                "client_host": request.client.host if request.client else None,
            },
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
                "message": "An unexpected error occurred. Please contact support with the error_id if the issue persists."
            },
        )

    app.include_router(health_router, tags=["Health"])
    app.include_router(rates_router, prefix="/api/v1", tags=["Rates"])
    app.include_router(bookings_router, prefix="/api/v1", tags=["Bookings"])
    app.include_router(margin_rules_router, prefix="/api/v1", tags=["Margin Rules"])
    return app


app = create_app()
