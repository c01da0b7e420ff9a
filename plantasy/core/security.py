from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal

import jwt
from fastapi import Header, HTTPException
from pydantic import BaseModel

from plantasy.core.config import get_settings


AdminRole = Literal["super_admin", "editor", "support"]
TOKEN_ALGORITHM = "HS256"


class AuthenticationRequired(PermissionError):
    pass


class Identity(BaseModel):
    """A customer identity asserted by the external identity provider."""

    uid: str
    email: str = ""


class AdminActor(BaseModel):
    role: AdminRole
    id: str


def _auth_error(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _auth_error("invalid authorization header")
    return token.strip()


def issue_identity_token(uid: str, email: str = "", ttl_seconds: int | None = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = ttl_seconds if ttl_seconds is not None else settings.identity_token_ttl_seconds
    payload = {
        "sub": uid,
        "uid": uid,
        "email": email,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    return jwt.encode(payload, settings.identity_token_secret, algorithm=TOKEN_ALGORITHM)


def verify_identity_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, get_settings().identity_token_secret, algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise _auth_error("token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise _auth_error("invalid token") from exc

    uid = payload.get("uid") or payload.get("sub")
    if not uid:
        raise _auth_error("token missing uid")
    return Identity(uid=str(uid), email=str(payload.get("email") or ""))


def get_optional_identity(authorization: str | None = Header(default=None)) -> Identity | None:
    token = _bearer_token(authorization)
    if token is None:
        return None
    return verify_identity_token(token)


def get_identity(authorization: str | None = Header(default=None)) -> Identity:
    identity = get_optional_identity(authorization)
    if identity is None:
        raise _auth_error("missing identity token")
    return identity


def _admin_from_api_key(api_key: str) -> AdminActor | None:
    settings = get_settings()
    key_map = {
        settings.super_admin_api_key: AdminActor(role="super_admin", id="admin-super"),
        settings.editor_api_key: AdminActor(role="editor", id="admin-editor"),
        settings.support_api_key: AdminActor(role="support", id="admin-support"),
    }
    return key_map.get(api_key)


def get_admin(x_api_key: str | None = Header(default=None)) -> AdminActor:
    settings = get_settings()
    if not settings.auth_enabled:
        return AdminActor(role="super_admin", id="admin-super")

    if not x_api_key or not x_api_key.strip():
        raise _auth_error("missing api key")

    admin = _admin_from_api_key(x_api_key.strip())
    if admin is None:
        raise _auth_error("invalid api key")
    return admin


def require_roles(admin: AdminActor, allowed: set[str], detail: str = "insufficient role") -> None:
    if admin.role not in allowed:
        raise HTTPException(status_code=403, detail=detail)
