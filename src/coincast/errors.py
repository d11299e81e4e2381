"""Error taxonomy for prediction submission and voting.

Every error here is scoped to a single operation; none is fatal to the process.
Score drift is not an exception: the aggregator logs and heals it in place.
"""

from __future__ import annotations


class CoincastError(Exception):
    """Base class for operation-scoped failures."""


class Unauthenticated(CoincastError):
    """No identity was supplied for an operation that needs one."""

    def __init__(self, action: str = "continue") -> None:
        super().__init__(f"Sign in to {action}")
        self.action = action


class InvalidInput(CoincastError):
    """Malformed submission or vote. The operation was not attempted."""


class PredictionNotFound(CoincastError):
    def __init__(self, prediction_id: int) -> None:
        super().__init__(f"Prediction {prediction_id} not found")
        self.prediction_id = prediction_id


class VoteConflict(CoincastError):
    """The voter's entry changed between read and write, even after a retry."""

    def __init__(self, prediction_id: int, voter_id: str) -> None:
        super().__init__(
            f"Vote on prediction {prediction_id} by {voter_id} conflicted with a concurrent update"
        )
        self.prediction_id = prediction_id
        self.voter_id = voter_id
