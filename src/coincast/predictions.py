from __future__ import annotations

import logging
import re
from dataclasses import replace
from decimal import Decimal, InvalidOperation

import httpx

from coincast.errors import InvalidInput, Unauthenticated
from coincast.models.identity import Identity
from coincast.models.prediction import Prediction, Timeframe, quantize_price
from coincast.registry.queries import Registry

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")

# NUMERIC(24, 6) holds 18 integer digits
MAX_PRICE = Decimal("1e18")


def parse_price(raw: str | int | float | Decimal) -> Decimal:
    """Parse a target price into a positive Decimal with 6 decimal places."""
    if isinstance(raw, bool):
        raise InvalidInput(f"Price must be a number, got {raw!r}")
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"Price must be a number, got {raw!r}") from None
    if not value.is_finite():
        raise InvalidInput(f"Price must be finite, got {raw!r}")
    too_large = InvalidInput(f"Price must be below {MAX_PRICE:,.0f}, got {raw!r}")
    try:
        value = quantize_price(value)
    except InvalidOperation:
        raise too_large from None
    if value >= MAX_PRICE:
        raise too_large
    if value <= 0:
        raise InvalidInput(f"Price must be positive, got {raw!r}")
    return value


def parse_timeframe(raw: str | Timeframe) -> Timeframe:
    try:
        return Timeframe(raw)
    except ValueError:
        raise InvalidInput(f"Unknown timeframe {raw!r}") from None


def normalize_link(link: str) -> str:
    """Prefix https:// when the link has no scheme."""
    link = link.strip()
    if not link or _SCHEME_RE.match(link):
        return link
    return f"https://{link}"


def link_label(link: str) -> str:
    """Hostname to show for a research link; the raw text if it does not parse."""
    try:
        host = httpx.URL(normalize_link(link)).host
    except (httpx.InvalidURL, TypeError, ValueError):
        logger.debug("Unparseable research link %r, using raw text", link)
        return link
    return host or link


class PredictionManager:
    """Validates and stores new predictions."""

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    def submit(
        self,
        author: Identity | None,
        coin_id: str,
        timeframe: str | Timeframe,
        price: str | int | float | Decimal,
        rationale: str,
        research_links: list[str] | None = None,
        coin_name: str = "",
    ) -> Prediction:
        """Validate and persist a prediction. Returns it with id and an empty ledger.

        Raises Unauthenticated without an author and InvalidInput for a bad
        price, timeframe, coin or an empty rationale. Links are kept as typed
        (blank entries dropped); an unparseable link is not an error.
        """
        if author is None:
            raise Unauthenticated("submit a prediction")

        coin_id = (coin_id or "").strip()
        if not coin_id:
            raise InvalidInput("Coin is required")
        parsed_timeframe = parse_timeframe(timeframe)
        parsed_price = parse_price(price)
        rationale = (rationale or "").strip()
        if not rationale:
            raise InvalidInput("Rationale is required")
        links = [link.strip() for link in (research_links or []) if link and link.strip()]

        prediction = Prediction(
            author_id=author.uid,
            author_name=author.display_name,
            author_photo_url=author.photo_url,
            coin_id=coin_id,
            coin_name=coin_name,
            timeframe=parsed_timeframe,
            price=parsed_price,
            rationale=rationale,
            research_links=links,
        )
        prediction_id = self._registry.create_prediction(prediction)
        logger.info(
            "Prediction %s by %s: %s %s @ %s",
            prediction_id, author.uid, coin_id, parsed_timeframe.value, parsed_price,
        )
        stored = self._registry.get_prediction(prediction_id)
        return stored if stored is not None else replace(prediction, id=prediction_id)
