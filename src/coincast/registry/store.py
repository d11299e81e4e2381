"""Storage contract the voting core depends on.

The core never talks to PostgreSQL directly; it goes through a PredictionStore.
The realtime side is modelled as a lazy, restartable stream of full snapshots:
each delivery is the whole matching set and replaces the previous one.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import AsyncIterator

from coincast.models.prediction import Prediction

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 2.0


class PredictionStore(abc.ABC):
    """Durable prediction storage with atomic vote updates and snapshot delivery."""

    poll_seconds: float = DEFAULT_POLL_SECONDS

    @abc.abstractmethod
    def create_prediction(self, prediction: Prediction) -> int:
        """Persist a new prediction and return its id."""

    @abc.abstractmethod
    def get_prediction(self, prediction_id: int) -> Prediction | None:
        ...

    @abc.abstractmethod
    def get_predictions_for_coin(self, coin_id: str) -> list[Prediction]:
        """All predictions for a coin, newest first."""

    @abc.abstractmethod
    def apply_vote(
        self,
        prediction_id: int,
        voter_id: str,
        expected: int,
        delta: int,
        new_value: int,
    ) -> Prediction:
        """Atomically move one voter's entry from ``expected`` to ``new_value``.

        ``net_score`` is incremented by ``delta`` in the same write. A
        ``new_value`` of 0 removes the entry. Raises PredictionNotFound when the
        prediction is gone and VoteConflict when the voter's entry no longer
        equals ``expected``.
        """

    @abc.abstractmethod
    def repair_net_score(self, prediction_id: int) -> Prediction | None:
        """Overwrite net_score with the sum of the stored voters map."""

    @abc.abstractmethod
    def delete_prediction(self, prediction_id: int, author_id: str) -> bool:
        ...

    async def subscribe(
        self, coin_id: str, poll_seconds: float | None = None,
    ) -> AsyncIterator[list[Prediction]]:
        """Yield the full prediction set for ``coin_id`` whenever it changes.

        The first snapshot is always delivered. Each call starts an
        independent stream. Read failures are logged and the next poll
        retries.
        """
        interval = self.poll_seconds if poll_seconds is None else poll_seconds
        previous: list[Prediction] | None = None
        while True:
            try:
                snapshot = await asyncio.to_thread(self.get_predictions_for_coin, coin_id)
            except Exception:
                logger.warning("Snapshot read failed for coin %s", coin_id, exc_info=True)
            else:
                if snapshot != previous:
                    previous = snapshot
                    yield list(snapshot)
            await asyncio.sleep(interval)
