from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from coincast.models.prediction import Prediction, Timeframe


@dataclass(frozen=True)
class ConsensusSummary:
    """Aggregate over all predictions sharing a coin and timeframe. Never persisted."""

    timeframe: Timeframe
    count: int
    weighted_average: Decimal
    highest_voted: Prediction
    total_votes: int = 0
