"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from txtchain.api.deps import Services, build_services
from txtchain.config import get_settings
from txtchain.errors import DuplicateTransferError, SettlementError, ValidationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    owns_services = app.state.services is None
    if owns_services:
        app.state.services = build_services()
    yield
    # Shutdown
    if owns_services:
        await app.state.services.close()
        app.state.services = None


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


def register_exception_handlers(app: FastAPI) -> None:
    """Translate the settlement error taxonomy to HTTP responses."""

    @app.exception_handler(DuplicateTransferError)
    async def duplicate_handler(request: Request, exc: DuplicateTransferError):
        return error_response(409, str(exc), transferId=exc.transfer_id)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return error_response(400, str(exc))

    @app.exception_handler(SettlementError)
    async def settlement_handler(request: Request, exc: SettlementError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return error_response(500, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
            problems.append(f"{field}: {error.get('msg')}")
        return error_response(400, "; ".join(problems) or "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} crashed: {exc}")
        return error_response(500, str(exc))


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Prebuilt service container; built at startup when omitted
    """
    settings = services.settings if services else get_settings()

    app = FastAPI(
        title="TextToChain API",
        description="Voucher redemption, swaps, sends and bridges settled on-chain",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register routes
    from txtchain.api.routers import chain, quotes, transfers
    from txtchain.api.routes import health

    app.include_router(health.router, tags=["Health"])
    app.include_router(transfers.router)
    app.include_router(quotes.router)
    app.include_router(chain.router)

    return app
