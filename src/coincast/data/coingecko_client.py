from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from coincast.models.coin import Coin

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"

# Shown when the feed is down and nothing is cached yet.
FALLBACK_COINS: list[Coin] = [
    Coin(
        id="bitcoin",
        symbol="btc",
        name="Bitcoin",
        image="https://assets.coingecko.com/coins/images/1/large/bitcoin.png",
        current_price=Decimal("52000"),
        market_cap=Decimal("1000000000000"),
        market_cap_rank=1,
        price_change_percentage_24h=Decimal("2.5"),
    ),
]


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


@dataclass
class CircuitBreaker:
    """Trips when failure rate exceeds threshold over a window."""

    threshold: float = 0.50
    window_seconds: int = 300
    min_calls: int = 10
    _successes: deque[float] = field(default_factory=deque)
    _failures: deque[float] = field(default_factory=deque)

    def record_success(self) -> None:
        self._prune()
        self._successes.append(time.monotonic())

    def record_failure(self) -> None:
        self._prune()
        self._failures.append(time.monotonic())

    def _prune(self) -> None:
        cutoff = time.monotonic() - self.window_seconds
        while self._successes and self._successes[0] < cutoff:
            self._successes.popleft()
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()

    @property
    def is_tripped(self) -> bool:
        self._prune()
        total = len(self._successes) + len(self._failures)
        if total < self.min_calls:
            return False
        return self.failure_rate >= self.threshold

    @property
    def failure_rate(self) -> float:
        self._prune()
        total = len(self._successes) + len(self._failures)
        if total == 0:
            return 0.0
        return len(self._failures) / total


class CoinGeckoClient:
    """Read-only market data feed backed by the CoinGecko REST API.

    Responses are cached for ``cache_seconds``. When the API fails the last
    good value is served even if stale; for the coin list, a fixed fallback
    is served when nothing was ever cached.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str = "",
        cache_seconds: int = 300,
        client: httpx.Client | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._client = client or httpx.Client(base_url=base_url, timeout=15, headers=headers)
        self._cache: dict[str, tuple[Any, datetime]] = {}
        self._cache_ttl = timedelta(seconds=cache_seconds)
        self._circuit_breaker = CircuitBreaker()

    @classmethod
    def from_config(cls, config) -> CoinGeckoClient:
        return cls(
            base_url=config.coingecko_base_url,
            api_key=config.coingecko_api_key,
            cache_seconds=config.market_cache_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def get_top_coins(self, limit: int = 10) -> list[Coin]:
        """Top coins by market cap, USD priced."""
        cache_key = f"markets:{limit}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        data = self._get_json(
            "/coins/markets",
            params={
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": limit,
                "page": 1,
                "sparkline": "false",
            },
        )
        if not isinstance(data, list):
            stale = self._get_stale(cache_key)
            if stale is not None:
                return stale
            return list(FALLBACK_COINS[:limit])

        coins = [self._market_row_to_coin(row) for row in data if row.get("id")]
        self._set_cached(cache_key, coins)
        return coins

    def get_coin(self, coin_id: str) -> Coin | None:
        """Coin detail with current USD price, or None if unknown or unavailable."""
        cache_key = f"coin:{coin_id}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        data = self._get_json(
            f"/coins/{coin_id}",
            params={
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false",
            },
        )
        if not isinstance(data, dict) or not data.get("id"):
            return self._get_stale(cache_key)

        market = data.get("market_data") or {}
        image = data.get("image") or {}
        coin = Coin(
            id=data["id"],
            symbol=data.get("symbol", ""),
            name=data.get("name", data["id"]),
            image=image.get("large") or image.get("small") or "",
            current_price=_to_decimal((market.get("current_price") or {}).get("usd")),
            market_cap=_to_decimal((market.get("market_cap") or {}).get("usd")),
            market_cap_rank=data.get("market_cap_rank"),
            price_change_percentage_24h=_to_decimal(market.get("price_change_percentage_24h")),
        )
        self._set_cached(cache_key, coin)
        return coin

    def _get_json(self, path: str, params: dict[str, Any]) -> Any | None:
        if self._circuit_breaker.is_tripped:
            logger.warning(
                "Circuit breaker tripped (failure_rate=%.2f), skipping %s",
                self._circuit_breaker.failure_rate, path,
            )
            return None
        try:
            resp = self._client.get(path, params=params)
            if resp.status_code == 404:
                self._circuit_breaker.record_success()
                return None
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            self._circuit_breaker.record_failure()
            logger.warning("CoinGecko request failed: %s", path, exc_info=True)
            return None
        self._circuit_breaker.record_success()
        return data

    @staticmethod
    def _market_row_to_coin(row: dict) -> Coin:
        return Coin(
            id=row["id"],
            symbol=row.get("symbol", ""),
            name=row.get("name", row["id"]),
            image=row.get("image") or "",
            current_price=_to_decimal(row.get("current_price")),
            market_cap=_to_decimal(row.get("market_cap")),
            market_cap_rank=row.get("market_cap_rank"),
            price_change_percentage_24h=_to_decimal(row.get("price_change_percentage_24h")),
        )

    def _get_cached(self, key: str) -> Any | None:
        """Return cached value if still valid, else None."""
        if key in self._cache:
            value, cached_at = self._cache[key]
            if datetime.now(UTC) - cached_at < self._cache_ttl:
                return value
        return None

    def _get_stale(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        logger.info("Serving stale market data for %s", key)
        return entry[0]

    def _set_cached(self, key: str, value: Any) -> None:
        self._cache[key] = (value, datetime.now(UTC))
