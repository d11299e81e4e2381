from __future__ import annotations

from coincast.models.prediction import Prediction
from coincast.models.profile import UserProfile

MAX_DISPLAY_NAME = 80
MAX_DESCRIPTION = 1000
MAX_TWITTER_HANDLE = 30


def build_profile(user_id: str, user_row: dict | None, predictions: list[Prediction]) -> UserProfile | None:
    """Profile with vote statistics over the user's predictions.

    Falls back to the author fields of their newest prediction when no
    profile row exists. Returns None for a user with neither.
    """
    if user_row is None and not predictions:
        return None

    user_row = user_row or {}
    newest = predictions[0] if predictions else None
    total_votes = sum(p.net_score for p in predictions)
    count = len(predictions)
    return UserProfile(
        user_id=user_id,
        display_name=user_row.get("display_name") or (newest.author_name if newest else "") or "Unknown User",
        photo_url=user_row.get("photo_url") or (newest.author_photo_url if newest else ""),
        description=user_row.get("description") or "",
        twitter_handle=user_row.get("twitter_handle") or "",
        total_votes=total_votes,
        prediction_count=count,
        average_votes=total_votes / count if count else 0.0,
        created_at=user_row.get("created_at"),
    )


def clean_twitter_handle(handle: str) -> str:
    return handle.strip().lstrip("@")[:MAX_TWITTER_HANDLE]
