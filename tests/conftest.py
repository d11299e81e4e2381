from __future__ import annotations

import copy
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from coincast.errors import PredictionNotFound, VoteConflict
from coincast.models.prediction import Prediction, Timeframe
from coincast.registry.store import PredictionStore

BASE_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryPredictionStore(PredictionStore):
    """Dict-backed store with the same atomicity contract as the Postgres registry."""

    poll_seconds = 0.01

    def __init__(self) -> None:
        self._rows: dict[int, Prediction] = {}
        self._lock = threading.Lock()
        self._next_id = 1
        self.apply_calls = 0
        self.repair_calls = 0
        # Number of upcoming apply_vote calls that should see a concurrent write
        self.pending_conflicts = 0

    def create_prediction(self, prediction: Prediction) -> int:
        with self._lock:
            pid = self._next_id
            self._next_id += 1
            stored = copy.deepcopy(prediction)
            stored.id = pid
            if stored.created_at is None:
                stored.created_at = BASE_TIME + timedelta(minutes=pid)
            self._rows[pid] = stored
            return pid

    def get_prediction(self, prediction_id: int) -> Prediction | None:
        with self._lock:
            row = self._rows.get(prediction_id)
            return copy.deepcopy(row) if row is not None else None

    def get_predictions_for_coin(self, coin_id: str) -> list[Prediction]:
        with self._lock:
            rows = [copy.deepcopy(p) for p in self._rows.values() if p.coin_id == coin_id]
        return sorted(rows, key=lambda p: (p.created_at, p.id), reverse=True)

    def apply_vote(self, prediction_id, voter_id, expected, delta, new_value) -> Prediction:
        with self._lock:
            self.apply_calls += 1
            row = self._rows.get(prediction_id)
            if row is None:
                raise PredictionNotFound(prediction_id)
            if self.pending_conflicts > 0:
                self.pending_conflicts -= 1
                raise VoteConflict(prediction_id, voter_id)
            if row.voters.get(voter_id, 0) != expected:
                raise VoteConflict(prediction_id, voter_id)
            row.net_score += delta
            if new_value == 0:
                row.voters.pop(voter_id, None)
            else:
                row.voters[voter_id] = new_value
            return copy.deepcopy(row)

    def repair_net_score(self, prediction_id: int) -> Prediction | None:
        with self._lock:
            self.repair_calls += 1
            row = self._rows.get(prediction_id)
            if row is None:
                return None
            row.net_score = sum(row.voters.values())
            return copy.deepcopy(row)

    def delete_prediction(self, prediction_id: int, author_id: str) -> bool:
        with self._lock:
            row = self._rows.get(prediction_id)
            if row is None or row.author_id != author_id:
                return False
            del self._rows[prediction_id]
            return True

    # Test helpers

    def corrupt_score(self, prediction_id: int, net_score: int) -> None:
        with self._lock:
            self._rows[prediction_id].net_score = net_score


def make_prediction(**overrides) -> Prediction:
    defaults = dict(
        author_id="author-1",
        author_name="CryptoExpert",
        coin_id="bitcoin",
        coin_name="Bitcoin",
        timeframe=Timeframe.Q1_2025,
        price=Decimal("45000"),
        rationale="Halving cycle",
    )
    defaults.update(overrides)
    return Prediction(**defaults)


@pytest.fixture
def store() -> InMemoryPredictionStore:
    return InMemoryPredictionStore()


@pytest.fixture
def prediction_id(store: InMemoryPredictionStore) -> int:
    return store.create_prediction(make_prediction())
