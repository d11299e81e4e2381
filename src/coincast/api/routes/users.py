"""User profile endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from coincast.api.deps import get_identity, get_registry, require_identity
from coincast.api.routes.shared import format_prediction, format_profile
from coincast.models.identity import Identity
from coincast.profiles import (
    MAX_DESCRIPTION,
    MAX_DISPLAY_NAME,
    build_profile,
    clean_twitter_handle,
)
from coincast.registry.queries import Registry

router = APIRouter()


class ProfileUpdateRequest(BaseModel):
    displayName: str = Field(min_length=1, max_length=MAX_DISPLAY_NAME)
    description: str = Field(default="", max_length=MAX_DESCRIPTION)
    twitterHandle: str = ""


@router.get("/users/{user_id}")
def get_user(
    user_id: str,
    registry: Registry = Depends(get_registry),
    viewer: Identity | None = Depends(get_identity),
) -> dict:
    """Profile with vote statistics and the user's predictions, newest first."""
    predictions = registry.get_predictions_by_author(user_id)
    profile = build_profile(user_id, registry.get_user(user_id), predictions)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    viewer_id = viewer.uid if viewer else None
    return {
        "profile": format_profile(profile),
        "predictions": [format_prediction(p, viewer_id) for p in predictions],
        "isOwner": viewer_id == user_id,
    }


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    body: ProfileUpdateRequest,
    registry: Registry = Depends(get_registry),
    identity: Identity = Depends(require_identity),
) -> dict:
    if identity.uid != user_id:
        raise HTTPException(status_code=403, detail="Can only edit your own profile")
    registry.ensure_user(identity)
    row = registry.update_user_profile(
        user_id,
        display_name=body.displayName.strip(),
        description=body.description.strip(),
        twitter_handle=clean_twitter_handle(body.twitterHandle),
    )
    if row is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    profile = build_profile(user_id, row, registry.get_predictions_by_author(user_id))
    return {"profile": format_profile(profile)}
