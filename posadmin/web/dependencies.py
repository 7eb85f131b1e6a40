"""FastAPI dependencies: backup service, current user and verification gate."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

import jwt
from fastapi import Cookie, Depends, HTTPException, Request, Response, status

from posadmin.services.backup.config import load_config
from posadmin.services.backup.errors import VerificationRequired
from posadmin.services.backup.service import BackupService
from posadmin.services.backup.verification import COOKIE_NAME, VerificationSession


@dataclass
class CurrentUser:
    id: str
    name: str


@lru_cache(maxsize=1)
def get_service() -> BackupService:
    """Process-wide backup service."""
    return BackupService(load_config())


def get_current_user(
    access_token: str | None = Cookie(None),
    service: BackupService = Depends(get_service),
) -> CurrentUser:
    """User from the login layer's ``access_token`` JWT cookie."""
    if not access_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = jwt.decode(access_token, service.config.secret_key, algorithms=["HS256"])
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return CurrentUser(id=str(user_id), name=payload.get("name") or str(user_id))


def verification_ttl(service: BackupService) -> timedelta:
    return timedelta(minutes=service.config.verification_minutes)


def set_verification_cookie(response: Response, session: VerificationSession, service: BackupService) -> None:
    ttl = verification_ttl(service)
    response.set_cookie(
        COOKIE_NAME,
        session.to_token(service.config.secret_key, ttl),
        max_age=int(ttl.total_seconds()),
        httponly=True,
        samesite="strict",
    )


def require_verification(
    request: Request,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    service: BackupService = Depends(get_service),
) -> VerificationSession:
    """Reject unless the user re-entered their password recently; slide the expiry forward."""
    token = request.cookies.get(COOKIE_NAME)
    session = VerificationSession.from_token(token, service.config.secret_key, user.id)
    if not session.is_valid(verification_ttl(service)):
        if token:
            service.security.event(
                "Backup verification expired",
                user_id=user.id,
                ip=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
        raise VerificationRequired("Backup verification required")

    session.refresh()
    set_verification_cookie(response, session, service)
    request.state.verification = session
    return session
