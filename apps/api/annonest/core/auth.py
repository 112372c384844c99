from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import Depends
from jose import JWTError, jwt
from sqlalchemy import and_, select
from sqlalchemy.orm import Session
from starlette.requests import Request

from annonest.access.roles import is_manager_tier
from annonest.context import get_correlation_id
from annonest.core.config import get_settings
from annonest.core.database import get_db
from annonest.core.errors import AuthenticationError, AuthorizationError
from annonest.identity.models import User
from annonest.platform.security.context import AuthContext


@dataclass
class AuthUser:
    sub: str
    org_id: str


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header[len("Bearer ") :] if auth_header.startswith("Bearer ") else ""


def decode_token(token: str) -> AuthUser:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationError("invalid token") from exc

    subject = payload.get("sub")
    org_id = payload.get("org_id")
    if not subject or not org_id:
        raise AuthenticationError("token is missing sub or org_id")
    return AuthUser(sub=str(subject), org_id=str(org_id))


def issue_token(user_id: uuid.UUID, org_id: uuid.UUID) -> str:
    settings = get_settings()
    return jwt.encode({"sub": str(user_id), "org_id": str(org_id)}, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_current_user(request: Request) -> AuthUser:
    token = _bearer_token(request)
    if not token:
        raise AuthenticationError("authentication required")
    return decode_token(token)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def check_account_gates(user: User, *, now: datetime | None = None) -> None:
    """Reject inactive, unapproved and trial-expired accounts."""

    if not user.is_active:
        raise AuthenticationError("account is inactive")
    if user.approval_status in {"pending", "rejected"}:
        raise AuthorizationError("account not approved")
    if user.trial_ends_at is not None and not is_manager_tier(user.role):
        current = now or datetime.now(timezone.utc)
        if _as_aware(user.trial_ends_at) < current:
            raise AuthorizationError("trial expired")


def build_auth_context(session: Session, auth_user: AuthUser) -> AuthContext:
    try:
        user_id = uuid.UUID(auth_user.sub)
        org_id = uuid.UUID(auth_user.org_id)
    except ValueError as exc:
        raise AuthenticationError("invalid token subject") from exc

    user = session.scalar(select(User).where(and_(User.id == user_id, User.org_id == org_id)))
    if user is None:
        raise AuthenticationError("unknown user")
    check_account_gates(user)

    return AuthContext(
        user_id=user.id,
        org_id=user.org_id,
        role=user.role,
        display_name=user.label,
        correlation_id=get_correlation_id(),
    )


def get_auth_context(
    request: Request,
    auth_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AuthContext:
    ctx = build_auth_context(db, auth_user)
    request.state.user_id = str(ctx.user_id)
    return ctx
