"""FastAPI application factory"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from installment_engine.api.dependencies import get_request_id
from installment_engine.api.middleware import MetricsMiddleware, RequestIDMiddleware
from installment_engine.api.v1 import admin, buyers, offers, requests, schedules, suppliers
from installment_engine.config import settings
from installment_engine.domain.exceptions import (
    CannotCancelActiveContract,
    ConcurrentModification,
    DomainException,
    DuplicateOffer,
    InstallmentAlreadyPaid,
    InstallmentNotFound,
    InvalidStateForDecision,
    OfferAlreadyResolved,
    OfferNotFound,
    PolicyViolation,
    RequestNotFound,
    RequestNotOpenForSuppliers,
    ValidationError,
)
from installment_engine.infrastructure.observability.logging import log_rejected_command, setup_logging

# Setup structured logging
setup_logging(settings.log_level)

# First match wins, so subclasses go before their bases
ERROR_STATUS_CODES = (
    (ValidationError, 422),
    (RequestNotFound, 404),
    (OfferNotFound, 404),
    (InstallmentNotFound, 404),
    (PolicyViolation, 403),
    (InvalidStateForDecision, 409),
    (RequestNotOpenForSuppliers, 409),
    (OfferAlreadyResolved, 409),
    (DuplicateOffer, 409),
    (InstallmentAlreadyPaid, 409),
    (CannotCancelActiveContract, 409),
    (ConcurrentModification, 409),
)


def status_code_for(error: DomainException) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = status_code_for(exc)
    log_rejected_command(
        f"{request.method} {request.url.path}",
        exc,
        request_id=get_request_id(request),
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Installment Negotiation Engine",
        description="Multi-party installment negotiation and payment scheduling",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(requests.router, prefix="/v1", tags=["requests"])
    app.include_router(offers.router, prefix="/v1", tags=["offers"])
    app.include_router(buyers.router, prefix="/v1", tags=["buyers"])
    app.include_router(suppliers.router, prefix="/v1", tags=["suppliers"])
    app.include_router(schedules.router, prefix="/v1", tags=["schedules"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])

    return app


app = create_app()
