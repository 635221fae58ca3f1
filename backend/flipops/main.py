# backend/flipops/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .domain.errors import DealNotFound, GuardrailError, MissingParameter
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.panels import router as panels_router
from .routers.deals import router as deals_router
from .routers.events import router as events_router

API_PREFIX = "/api"

log = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MissingParameter)
    async def _missing(request: Request, exc: MissingParameter):
        return JSONResponse(status_code=422, content={"error": str(exc)})

    @app.exception_handler(DealNotFound)
    async def _not_found(request: Request, exc: DealNotFound):
        log.info("deal not found", extra={"deal_id": exc.deal_id})
        return JSONResponse(status_code=404, content={"error": "Deal not found"})

    @app.exception_handler(StarletteHTTPException)
    async def _http(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _invalid(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(GuardrailError)
    async def _guardrail(request: Request, exc: GuardrailError):
        log.error("guardrail failure", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log.error("unhandled error", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="FlipOps Guardrails",
        version=getattr(settings, "service_version", "dev"),
    )

    # last added runs outermost; the request id is set before the access line is written
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "X-Request-ID"],
    )

    _install_error_handlers(app)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(panels_router, prefix=API_PREFIX)
    app.include_router(deals_router, prefix=API_PREFIX)
    app.include_router(events_router, prefix=API_PREFIX)
    return app


app = create_app()
