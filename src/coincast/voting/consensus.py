from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from coincast.models.consensus import ConsensusSummary
from coincast.models.prediction import Prediction, Timeframe


def weight(prediction: Prediction) -> int:
    """Influence on the consensus price: net score clamped at zero."""
    return max(prediction.net_score, 0)


def _rank_key(prediction: Prediction) -> tuple:
    # Highest score first; ties go to the earliest prediction, then the lowest id.
    created = prediction.created_at
    return (
        -prediction.net_score,
        created is None,
        created.timestamp() if isinstance(created, datetime) else 0.0,
        prediction.id is None,
        prediction.id or 0,
    )


def rank(predictions: Iterable[Prediction], timeframe: str | None = None) -> list[Prediction]:
    """Predictions ordered for display, optionally restricted to one timeframe."""
    selected = [p for p in predictions if timeframe is None or p.timeframe == timeframe]
    return sorted(selected, key=_rank_key)


def weighted_average(predictions: list[Prediction]) -> Decimal:
    """Vote-weighted mean price; the plain mean when no prediction has positive weight."""
    total_weight = sum(weight(p) for p in predictions)
    if total_weight == 0:
        return sum((p.price for p in predictions), Decimal(0)) / len(predictions)
    return sum((p.price * weight(p) for p in predictions), Decimal(0)) / total_weight


def summarize(predictions: Iterable[Prediction], timeframe: str) -> ConsensusSummary | None:
    """Consensus for one timeframe, or None when no prediction targets it."""
    selected = [p for p in predictions if p.timeframe == timeframe]
    if not selected:
        return None

    return ConsensusSummary(
        timeframe=selected[0].timeframe,
        count=len(selected),
        weighted_average=weighted_average(selected),
        highest_voted=min(selected, key=_rank_key),
        total_votes=sum(p.net_score for p in selected),
    )


def summarize_all(predictions: Iterable[Prediction]) -> dict[Timeframe, ConsensusSummary]:
    """Summaries for every timeframe that has at least one prediction."""
    snapshot = list(predictions)
    summaries: dict[Timeframe, ConsensusSummary] = {}
    for timeframe in Timeframe:
        summary = summarize(snapshot, timeframe)
        if summary is not None:
            summaries[timeframe] = summary
    return summaries
