"""Backup administration endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from posadmin.services.backup.service import BackupService
from posadmin.services.backup.storage import ArtifactKind, format_size
from posadmin.services.backup.verification import VerificationSession, verify_password
from posadmin.web.dependencies import (
    CurrentUser,
    get_current_user,
    get_service,
    require_verification,
    set_verification_cookie,
)

logger = logging.getLogger("web.api.backup")
router = APIRouter()


class VerifyRequest(BaseModel):
    password: str = ""


def _client(request: Request) -> dict:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/verify")
def verify(
    body: VerifyRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    service: BackupService = Depends(get_service),
):
    """Re-enter the account password to unlock backup actions."""
    if not body.password:
        return JSONResponse(status_code=400, content={"success": False, "message": "Password is required"})

    if not verify_password(service.engine, user.id, body.password):
        service.security.event("Backup verification failed", user_id=user.id, **_client(request))
        return JSONResponse(status_code=401, content={"success": False, "message": "Invalid password"})

    session = VerificationSession(user_id=user.id).refresh()
    service.security.event("Backup verification successful", user_id=user.id, **_client(request))
    response = JSONResponse(content={"success": True, "message": "Verification successful"})
    set_verification_cookie(response, session, service)
    return response


@router.get("/backups")
def list_backups(
    kind: ArtifactKind | None = Query(None),
    _: VerificationSession = Depends(require_verification),
    service: BackupService = Depends(get_service),
):
    """List backup files, newest first."""
    return {
        "backups": [
            {
                "filename": e.filename,
                "kind": e.kind.value,
                "size": e.size,
                "size_formatted": format_size(e.size),
                "created": e.created.strftime("%Y-%m-%d %H:%M:%S"),
                "modified": e.modified.strftime("%Y-%m-%d %H:%M:%S"),
            }
            for e in service.list_backups(kind)
        ]
    }


@router.post("/backups")
def create_backup(
    user: CurrentUser = Depends(get_current_user),
    _: VerificationSession = Depends(require_verification),
    service: BackupService = Depends(get_service),
):
    """Create a manual backup now."""
    result = service.create_backup(ArtifactKind.manual, actor=user.name)
    message = "Backup created successfully"
    if result.strategy != "mysqldump":
        message += " (fallback method)"
    return {
        "success": True,
        "message": message,
        "filename": result.filename,
        "size": result.size_formatted,
        "method": result.strategy,
    }


@router.delete("/backups/{filename}")
def delete_backup(
    filename: str,
    user: CurrentUser = Depends(get_current_user),
    _: VerificationSession = Depends(require_verification),
    service: BackupService = Depends(get_service),
):
    service.delete_backup(filename, actor=user.name)
    return {"success": True, "message": "Backup deleted successfully"}


@router.get("/backups/{filename}/download")
def download_backup(
    filename: str,
    request: Request,
    _: VerificationSession = Depends(require_verification),
    service: BackupService = Depends(get_service),
):
    path = service.backup_path(filename)
    response = FileResponse(path, media_type="application/octet-stream", filename=filename)
    # Returned responses bypass the dependency's cookie, so refresh it here
    set_verification_cookie(response, request.state.verification, service)
    return response


@router.post("/backups/{filename}/restore")
def restore_backup(
    filename: str,
    user: CurrentUser = Depends(get_current_user),
    _: VerificationSession = Depends(require_verification),
    service: BackupService = Depends(get_service),
):
    """Replace the database contents with a backup."""
    result = service.restore_backup(filename, actor=user.name)
    body = {"success": True, "message": result.message, "method": result.strategy}
    if result.strategy == "fallback":
        body["stats"] = {"executed": result.executed, "errors": result.errors}
    return body


@router.get("/logs")
def backup_logs(
    limit: int = Query(50, ge=1, le=500),
    _: VerificationSession = Depends(require_verification),
    service: BackupService = Depends(get_service),
):
    return {"logs": service.recent_logs(limit)}
