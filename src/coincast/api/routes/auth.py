"""Session endpoints: exchange an identity token for a session cookie, logout, check."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from coincast.api.auth import identity_from_token
from coincast.api.deps import app_state, get_identity, get_registry
from coincast.models.identity import Identity
from coincast.registry.queries import Registry

router = APIRouter()

COOKIE_NAME = "session"


class SessionRequest(BaseModel):
    token: str


@router.post("/auth/session")
def create_session(
    body: SessionRequest,
    request: Request,
    response: Response,
    registry: Registry = Depends(get_registry),
) -> dict:
    """Validate an identity token, set the session cookie and ensure a profile exists."""
    config = app_state.config
    if not config or not config.auth_secret_key:
        return {"ok": False, "error": "Auth not configured"}

    identity = identity_from_token(body.token, config.auth_secret_key)
    if identity is None:
        response.status_code = 401
        return {"ok": False, "error": "Invalid token"}

    registry.ensure_user(identity)

    # Secure cookie only over HTTPS (reverse proxies set X-Forwarded-Proto)
    is_https = (
        request.url.scheme == "https"
        or request.headers.get("x-forwarded-proto") == "https"
    )
    response.set_cookie(
        key=COOKIE_NAME,
        value=body.token,
        httponly=True,
        secure=is_https,
        samesite="lax",
        max_age=config.auth_token_expiry_hours * 3600,
        path="/",
    )
    return {"ok": True, "userId": identity.uid, "displayName": identity.display_name}


@router.post("/auth/logout")
def logout(response: Response) -> dict:
    response.delete_cookie(key=COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/auth/check")
def check_auth(identity: Identity | None = Depends(get_identity)) -> dict:
    if identity is None:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "userId": identity.uid,
        "displayName": identity.display_name,
        "photoUrl": identity.photo_url,
    }
