"""
FastAPI application entry point for the ledger backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vault_backend.config import get_settings
from vault_backend.errors import InvalidInput, LedgerError
from vault_backend.routes import router
from vault_backend.schemas import ErrorResponse

logger = logging.getLogger(__name__)


def _error_body(error: LedgerError) -> dict:
    return ErrorResponse(error=error.code, detail=error.message).model_dump()


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Vault Ledger Backend (FastAPI)", version="0.1.0")
    origins = settings.cors_origin_list() or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "x-admin-key"],
    )
    app.include_router(router, prefix=settings.api_prefix)

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = InvalidInput("; ".join(str(e.get("msg")) for e in exc.errors()))
        return JSONResponse(status_code=error.status_code, content=_error_body(error))

    return app


app = create_app()
