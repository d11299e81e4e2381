"""Identity tokens: HS256 JWTs carrying the signed-in user's id, name and picture."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from coincast.models.identity import Identity

ALGORITHM = "HS256"


def create_token(secret: str, expiry_hours: int, identity: Identity) -> str:
    """Create a signed JWT for ``identity`` with an expiration claim."""
    exp = datetime.now(timezone.utc) + timedelta(hours=expiry_hours)
    claims = {
        "sub": identity.uid,
        "name": identity.display_name,
        "picture": identity.photo_url,
        "exp": exp,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def identity_from_token(token: str, secret: str) -> Identity | None:
    """Return the identity in a valid, unexpired token, else None."""
    if not token or not secret:
        return None
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    uid = claims.get("sub")
    if not uid:
        return None
    return Identity(
        uid=str(uid),
        display_name=claims.get("name") or "",
        photo_url=claims.get("picture") or "",
    )


def verify_token(token: str, secret: str) -> bool:
    return identity_from_token(token, secret) is not None
