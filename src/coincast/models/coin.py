from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class Coin:
    id: str
    symbol: str
    name: str
    image: str = ""
    current_price: Decimal | None = None
    market_cap: Decimal | None = None
    market_cap_rank: int | None = None
    price_change_percentage_24h: Decimal | None = None
