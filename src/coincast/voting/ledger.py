"""One-vote-per-user ledger.

A vote is a transition of one voter's entry:

    current == value   -> toggle off, entry removed, score -= value
    current == -value  -> switch, entry = value, score += value - current
    current == 0       -> first vote, entry = value, score += value

Each transition is written as a single conditional update relative to the
entry that was read, so a stale read turns into a conflict instead of a
lost or doubled vote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coincast.errors import InvalidInput, PredictionNotFound, Unauthenticated, VoteConflict
from coincast.models.identity import Identity
from coincast.models.prediction import VOTE_VALUES, Prediction
from coincast.registry.store import PredictionStore
from coincast.voting.aggregator import reconcile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteChange:
    previous: int
    new_value: int
    delta: int

    @property
    def is_toggle_off(self) -> bool:
        return self.previous != 0 and self.new_value == 0


def plan_vote(current: int, value: int) -> VoteChange:
    if value not in VOTE_VALUES:
        raise InvalidInput(f"Vote value must be +1 or -1, got {value!r}")
    if current == value:
        return VoteChange(previous=current, new_value=0, delta=-value)
    return VoteChange(previous=current, new_value=value, delta=value - current)


def apply_vote_locally(prediction: Prediction, voter_id: str, value: int) -> Prediction:
    """Optimistic copy of ``prediction`` after the vote. The input is left untouched."""
    change = plan_vote(prediction.vote_of(voter_id), value)
    voters = dict(prediction.voters)
    if change.new_value == 0:
        voters.pop(voter_id, None)
    else:
        voters[voter_id] = change.new_value
    return prediction.with_votes(prediction.net_score + change.delta, voters)


class VoteLedger:
    """Applies votes against a PredictionStore."""

    def __init__(self, store: PredictionStore, retry_limit: int = 1) -> None:
        self._store = store
        self._retry_limit = max(retry_limit, 0)

    def cast_vote(
        self, prediction_id: int, voter: Identity | None, value: int,
    ) -> Prediction | None:
        """Cast, switch or withdraw ``voter``'s vote on a prediction.

        Returns the updated prediction, or None if the prediction no longer
        exists (the vote is dropped). Raises Unauthenticated without a voter,
        InvalidInput for a value other than +1/-1, and VoteConflict when the
        entry keeps moving underneath us after the retry budget is spent.
        """
        if voter is None:
            raise Unauthenticated("vote")
        if value not in VOTE_VALUES:
            raise InvalidInput(f"Vote value must be +1 or -1, got {value!r}")

        attempt = 0
        while True:
            prediction = self._store.get_prediction(prediction_id)
            if prediction is None:
                logger.info("Dropping vote by %s: prediction %s not found", voter.uid, prediction_id)
                return None

            change = plan_vote(prediction.vote_of(voter.uid), value)
            try:
                updated = self._store.apply_vote(
                    prediction_id,
                    voter.uid,
                    expected=change.previous,
                    delta=change.delta,
                    new_value=change.new_value,
                )
            except PredictionNotFound:
                logger.info("Dropping vote by %s: prediction %s deleted concurrently", voter.uid, prediction_id)
                return None
            except VoteConflict:
                if attempt >= self._retry_limit:
                    logger.warning(
                        "Vote by %s on prediction %s conflicted after %d attempts",
                        voter.uid, prediction_id, attempt + 1,
                    )
                    raise
                attempt += 1
                logger.info("Vote conflict on prediction %s, retrying with a fresh read", prediction_id)
                continue

            logger.debug(
                "Vote on %s by %s: %+d -> %+d (score %+d)",
                prediction_id, voter.uid, change.previous, change.new_value, change.delta,
            )
            return reconcile(self._store, updated)
