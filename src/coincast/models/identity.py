from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """Opaque signed-in user, as vouched for by the identity provider."""

    uid: str
    display_name: str = ""
    photo_url: str = ""
