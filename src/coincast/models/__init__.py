from __future__ import annotations

from coincast.models.coin import Coin
from coincast.models.consensus import ConsensusSummary
from coincast.models.identity import Identity
from coincast.models.prediction import (
    DOWNVOTE,
    TIMEFRAME_LABELS,
    UPVOTE,
    VOTE_VALUES,
    Prediction,
    Timeframe,
    quantize_price,
)
from coincast.models.profile import UserProfile

__all__ = [
    # prediction
    "Prediction",
    "Timeframe",
    "TIMEFRAME_LABELS",
    "UPVOTE",
    "DOWNVOTE",
    "VOTE_VALUES",
    "quantize_price",
    # consensus
    "ConsensusSummary",
    # identity
    "Identity",
    # profile
    "UserProfile",
    # market
    "Coin",
]
