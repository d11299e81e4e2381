from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from coincast.registry.store import PredictionStore
from coincast.voting.aggregator import has_drift, net_score, reconcile, reconcile_all, repair

from conftest import InMemoryPredictionStore, make_prediction


class TestNetScore:
    def test_sum_of_votes(self) -> None:
        assert net_score({"a": 1, "b": 1, "c": -1}) == 1

    def test_empty_is_zero(self) -> None:
        assert net_score({}) == 0


class TestHasDrift:
    def test_consistent(self) -> None:
        assert not has_drift(make_prediction(net_score=2, voters={"a": 1, "b": 1}))

    def test_drifted(self) -> None:
        assert has_drift(make_prediction(net_score=5, voters={"a": 1}))


class TestReconcile:
    def test_consistent_prediction_returned_as_is(self) -> None:
        store = MagicMock(spec=PredictionStore)
        prediction = make_prediction(id=1, net_score=1, voters={"a": 1})
        assert reconcile(store, prediction) is prediction
        store.repair_net_score.assert_not_called()

    def test_drift_repaired_in_store(
        self, store: InMemoryPredictionStore, caplog: pytest.LogCaptureFixture,
    ) -> None:
        pid = store.create_prediction(make_prediction(voters={"a": 1, "b": -1, "c": 1}))
        store.corrupt_score(pid, 10)
        drifted = store.get_prediction(pid)

        with caplog.at_level(logging.WARNING):
            healed = reconcile(store, drifted)

        assert healed.net_score == 1
        assert store.get_prediction(pid).net_score == 1
        assert store.repair_calls == 1
        assert "Consistency drift" in caplog.text
        assert "net_score=10" in caplog.text

    def test_repair_failure_heals_locally(self, caplog: pytest.LogCaptureFixture) -> None:
        store = MagicMock(spec=PredictionStore)
        store.repair_net_score.side_effect = RuntimeError("db down")
        prediction = make_prediction(id=3, net_score=-4, voters={"a": 1})

        with caplog.at_level(logging.WARNING):
            healed = reconcile(store, prediction)

        assert healed.net_score == 1
        assert prediction.net_score == -4
        assert "Failed to repair" in caplog.text

    def test_repair_of_deleted_prediction_heals_locally(self) -> None:
        store = MagicMock(spec=PredictionStore)
        store.repair_net_score.return_value = None
        healed = reconcile(store, make_prediction(id=3, net_score=2, voters={}))
        assert healed.net_score == 0

    def test_unsaved_prediction_not_sent_to_store(self) -> None:
        store = MagicMock(spec=PredictionStore)
        healed = reconcile(store, make_prediction(net_score=2, voters={"a": -1}))
        assert healed.net_score == -1
        store.repair_net_score.assert_not_called()


class TestReconcileAll:
    def test_returns_repaired_ids(self, store: InMemoryPredictionStore) -> None:
        ok = store.create_prediction(make_prediction(net_score=1, voters={"a": 1}))
        bad = store.create_prediction(make_prediction(net_score=0, voters={"a": 1, "b": 1}))
        repaired = reconcile_all(store, store.get_predictions_for_coin("bitcoin"))
        assert repaired == [bad]
        assert store.get_prediction(bad).net_score == 2
        assert store.get_prediction(ok).net_score == 1

    def test_nothing_to_do(self, store: InMemoryPredictionStore) -> None:
        assert reconcile_all(store, []) == []

    def test_failed_write_not_counted(self, caplog: pytest.LogCaptureFixture) -> None:
        store = MagicMock(spec=PredictionStore)
        store.repair_net_score.side_effect = RuntimeError("db down")
        drifted = make_prediction(id=7, net_score=3, voters={"a": 1})
        with caplog.at_level(logging.WARNING):
            assert reconcile_all(store, [drifted]) == []
        assert "could not be repaired" in caplog.text

    def test_deleted_during_sweep_not_counted(self) -> None:
        store = MagicMock(spec=PredictionStore)
        store.repair_net_score.return_value = None
        assert reconcile_all(store, [make_prediction(id=7, net_score=3, voters={})]) == []


class TestRepair:
    def test_returns_written_row(self, store: InMemoryPredictionStore) -> None:
        pid = store.create_prediction(make_prediction(voters={"a": -1}))
        store.corrupt_score(pid, 2)
        written = repair(store, store.get_prediction(pid))
        assert written.net_score == -1

    def test_unsaved_prediction_not_written(self) -> None:
        store = MagicMock(spec=PredictionStore)
        assert repair(store, make_prediction(net_score=2)) is None
        store.repair_net_score.assert_not_called()
