from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

PRICE_QUANTUM = Decimal("0.000001")

UPVOTE = 1
DOWNVOTE = -1
VOTE_VALUES = (UPVOTE, DOWNVOTE)


class Timeframe(StrEnum):
    Q1_2025 = "q1_2025"
    Q2_2025 = "q2_2025"
    Q3_2025 = "q3_2025"
    Q4_2025 = "q4_2025"
    Q1_2026 = "q1_2026"
    Q2_2026 = "q2_2026"
    Y2026 = "y2026"
    Y2027 = "y2027"
    Y2028 = "y2028"
    Y2029 = "y2029"
    Y2030 = "y2030"
    Y2035 = "y2035"
    Y2040 = "y2040"

    @property
    def label(self) -> str:
        return TIMEFRAME_LABELS[self]


TIMEFRAME_LABELS: dict[Timeframe, str] = {
    Timeframe.Q1_2025: "Q1 2025",
    Timeframe.Q2_2025: "Q2 2025",
    Timeframe.Q3_2025: "Q3 2025",
    Timeframe.Q4_2025: "Q4 2025",
    Timeframe.Q1_2026: "Q1 2026",
    Timeframe.Q2_2026: "Q2 2026",
    Timeframe.Y2026: "2026",
    Timeframe.Y2027: "2027",
    Timeframe.Y2028: "2028",
    Timeframe.Y2029: "2029",
    Timeframe.Y2030: "2030",
    Timeframe.Y2035: "2035",
    Timeframe.Y2040: "2040",
}


def quantize_price(value: Decimal) -> Decimal:
    """Round a price to the stored precision (6 decimal places)."""
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass
class Prediction:
    author_id: str
    coin_id: str
    timeframe: Timeframe
    price: Decimal
    rationale: str
    research_links: list[str] = field(default_factory=list)
    author_name: str = ""
    author_photo_url: str = ""
    coin_name: str = ""
    net_score: int = 0
    voters: dict[str, int] = field(default_factory=dict)
    id: int | None = None
    created_at: datetime | None = None

    def vote_of(self, voter_id: str) -> int:
        """Current vote of a voter, 0 when they have not voted."""
        return self.voters.get(voter_id, 0)

    def with_votes(self, net_score: int, voters: dict[str, int]) -> Prediction:
        return replace(self, net_score=net_score, voters=dict(voters))
