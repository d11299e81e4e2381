from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class UserProfile:
    user_id: str
    display_name: str
    photo_url: str = ""
    description: str = ""
    twitter_handle: str = ""
    total_votes: int = 0
    prediction_count: int = 0
    average_votes: float = 0.0
    created_at: datetime | None = None
