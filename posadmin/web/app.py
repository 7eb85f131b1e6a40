"""FastAPI application factory for the backup administration API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from posadmin import __version__
from posadmin.services.backup.errors import (
    BackupError,
    BackupInProgress,
    InvalidArtifact,
    VerificationRequired,
)

logger = logging.getLogger("web")

_STATUS_CODES: dict[type[BackupError], int] = {
    InvalidArtifact: 404,
    BackupInProgress: 409,
    VerificationRequired: 403,
}


def _status_for(exc: BackupError) -> int:
    for exc_type, code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return code
    return 500


async def backup_error_handler(request: Request, exc: BackupError) -> JSONResponse:
    code = _status_for(exc)
    if code == 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=code, content={"success": False, "message": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="POS Backup",
        description="Database backup and restore administration",
        version=__version__,
    )

    app.add_exception_handler(BackupError, backup_error_handler)

    from posadmin.web.api.backup import router as backup_router

    app.include_router(backup_router, prefix="/api/backup", tags=["backup"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
