from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from coincast.errors import InvalidInput, PredictionNotFound, VoteConflict
from coincast.models.identity import Identity
from coincast.models.prediction import Prediction, Timeframe
from coincast.registry.db import Database
from coincast.registry.queries import Registry, _parse_voters
from coincast.voting.ledger import VoteLedger


@pytest.fixture
def mock_db() -> MagicMock:
    db = MagicMock(spec=Database)
    return db


@pytest.fixture
def registry(mock_db: MagicMock) -> Registry:
    return Registry(mock_db)


def _row(**overrides) -> dict:
    row = {
        "id": 1,
        "author_id": "u1",
        "author_name": "CryptoExpert",
        "author_photo_url": None,
        "coin_id": "bitcoin",
        "coin_name": "Bitcoin",
        "timeframe": "q1_2025",
        "price": Decimal("45000.000000"),
        "rationale": "Halving cycle",
        "research_links": ["https://example.com/a"],
        "net_score": 1,
        "voters": {"u2": 1},
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


# ------------------------------------------------------------------
# Predictions
# ------------------------------------------------------------------


class TestCreatePrediction:
    def test_insert_returns_id(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [{"id": 42}]
        prediction = Prediction(
            author_id="u1", coin_id="bitcoin", timeframe=Timeframe.Y2030,
            price=Decimal("250000"), rationale="Adoption", research_links=["x.com/a"],
        )
        assert registry.create_prediction(prediction) == 42
        sql, params = mock_db.execute.call_args[0]
        assert "INSERT INTO coincast.predictions" in sql
        assert "y2030" in params
        assert json.dumps(["x.com/a"]) in params
        assert "voters" not in sql


class TestGetPrediction:
    def test_returns_prediction(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row()]
        p = registry.get_prediction(1)
        assert isinstance(p, Prediction)
        assert p.timeframe is Timeframe.Q1_2025
        assert p.price == Decimal("45000")
        assert p.voters == {"u2": 1}
        assert p.author_photo_url == ""
        assert p.research_links == ["https://example.com/a"]

    def test_missing_returns_none(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        assert registry.get_prediction(7) is None

    def test_json_text_columns_parsed(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(voters='{"a": -1}', research_links='["l"]')]
        p = registry.get_prediction(1)
        assert p.voters == {"a": -1}
        assert p.research_links == ["l"]

    def test_unknown_timeframe_rejected(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(timeframe="q5_2025")]
        with pytest.raises(InvalidInput, match="unknown timeframe"):
            registry.get_prediction(1)


class TestListings:
    def test_for_coin_newest_first(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(id=2), _row(id=1)]
        result = registry.get_predictions_for_coin("bitcoin")
        assert [p.id for p in result] == [2, 1]
        sql, params = mock_db.execute.call_args[0]
        assert "ORDER BY created_at DESC" in sql
        assert params == ("bitcoin",)

    def test_for_coins_grouped(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(id=1), _row(id=2, coin_id="ethereum")]
        grouped = registry.get_predictions_for_coins(["bitcoin", "ethereum", "solana"])
        assert [p.id for p in grouped["bitcoin"]] == [1]
        assert [p.id for p in grouped["ethereum"]] == [2]
        assert grouped["solana"] == []

    def test_for_coins_empty_skips_query(self, registry: Registry, mock_db: MagicMock) -> None:
        assert registry.get_predictions_for_coins([]) == {}
        mock_db.execute.assert_not_called()

    def test_by_author(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row()]
        assert len(registry.get_predictions_by_author("u1")) == 1
        assert "author_id = %s" in mock_db.execute.call_args[0][0]

    def test_all_predictions_delegates_for_coin(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        registry.get_all_predictions("bitcoin")
        assert mock_db.execute.call_args[0][1] == ("bitcoin",)


class TestDeletePrediction:
    def test_owner_delete(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [{"id": 1}]
        assert registry.delete_prediction(1, "u1") is True
        sql, params = mock_db.execute.call_args[0]
        assert "author_id = %s" in sql
        assert params == (1, "u1")

    def test_nothing_matched(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        assert registry.delete_prediction(1, "intruder") is False


# ------------------------------------------------------------------
# Votes
# ------------------------------------------------------------------


class TestApplyVote:
    def test_conditional_relative_update(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(net_score=2, voters={"u2": 1, "u3": 1})]
        p = registry.apply_vote(1, "u3", expected=0, delta=1, new_value=1)
        assert p.net_score == 2
        sql, params = mock_db.execute.call_args[0]
        assert "net_score = net_score + %s" in sql
        assert "jsonb_typeof(voters -> %s::text) = 'number'" in sql
        assert "THEN (voters ->> %s::text)::int ELSE 0 END = %s" in sql
        assert params == (1, 1, "u3", "u3", 1, 1, "u3", "u3", "u3", 0)

    def test_guard_never_casts_raw_entry(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row()]
        registry.apply_vote(1, "u3", expected=0, delta=1, new_value=1)
        sql = mock_db.execute.call_args[0][0]
        where = sql.split("WHERE", 1)[1]
        assert "COALESCE" not in where
        assert where.index("IN ('1', '-1')") < where.index("::int")
        assert where.index("jsonb_typeof") < where.index("::int")

    def test_malformed_stored_entry_voted_over(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.side_effect = [
            [_row(net_score=0, voters={"u3": "up"})],
            [_row(net_score=1, voters={"u3": 1})],
        ]
        updated = VoteLedger(registry).cast_vote(1, Identity(uid="u3"), 1)
        assert updated.voters == {"u3": 1}
        params = mock_db.execute.call_args[0][1]
        assert params[0] == 1
        assert params[-1] == 0

    def test_toggle_off_passes_zero(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(net_score=0, voters={})]
        registry.apply_vote(1, "u2", expected=1, delta=-1, new_value=0)
        params = mock_db.execute.call_args[0][1]
        assert params[0] == -1
        assert params[1] == 0
        assert params[-1] == 1

    def test_missing_prediction_raises_not_found(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.side_effect = [[], []]
        with pytest.raises(PredictionNotFound):
            registry.apply_vote(9, "u3", expected=0, delta=1, new_value=1)

    def test_moved_entry_raises_conflict(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.side_effect = [[], [{"ok": 1}]]
        with pytest.raises(VoteConflict):
            registry.apply_vote(1, "u3", expected=0, delta=1, new_value=1)


class TestRepairNetScore:
    def test_recomputes_in_database(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(net_score=1)]
        p = registry.repair_net_score(1)
        assert p.net_score == 1
        sql = mock_db.execute.call_args[0][0]
        assert "jsonb_each(voters)" in sql
        assert "jsonb_typeof(value) = 'number'" in sql

    def test_missing_returns_none(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        assert registry.repair_net_score(1) is None


# ------------------------------------------------------------------
# Users
# ------------------------------------------------------------------


class TestUsers:
    def test_ensure_user_created(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [{"user_id": "u1"}]
        assert registry.ensure_user(Identity(uid="u1", display_name="Ann")) is True
        sql, params = mock_db.execute.call_args[0]
        assert "ON CONFLICT (user_id) DO NOTHING" in sql
        assert params == ("u1", "Ann", "")

    def test_ensure_user_existing(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        assert registry.ensure_user(Identity(uid="u1")) is False

    def test_get_user(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [{"user_id": "u1", "display_name": "Ann"}]
        assert registry.get_user("u1")["display_name"] == "Ann"

    def test_get_user_missing(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        assert registry.get_user("nobody") is None

    def test_update_profile(self, registry: Registry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [{"user_id": "u1", "display_name": "New"}]
        row = registry.update_user_profile("u1", "New", "bio", "handle")
        assert row["display_name"] == "New"
        assert mock_db.execute.call_args[0][1] == ("New", "bio", "handle", "u1")


class TestParseVoters:
    def test_keeps_unit_votes(self) -> None:
        assert _parse_voters({"a": 1, "b": -1}, 1) == {"a": 1, "b": -1}

    def test_drops_malformed_entries(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            voters = _parse_voters({"a": 1, "b": 2, "c": "1", "d": True, "e": 0}, 5)
        assert voters == {"a": 1}
        assert "Dropping malformed vote" in caplog.text
        assert caplog.text.count("Dropping malformed vote") == 3

    def test_none(self) -> None:
        assert _parse_voters(None, 1) == {}
