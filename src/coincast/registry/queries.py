from __future__ import annotations

import json
import logging
from decimal import Decimal

from coincast.errors import InvalidInput, PredictionNotFound, VoteConflict
from coincast.models.identity import Identity
from coincast.models.prediction import Prediction, Timeframe
from coincast.registry.db import Database
from coincast.registry.store import DEFAULT_POLL_SECONDS, PredictionStore

logger = logging.getLogger(__name__)

PREDICTION_COLUMNS = (
    "id, author_id, author_name, author_photo_url, coin_id, coin_name, timeframe, "
    "price, rationale, research_links, net_score, voters, created_at"
)


class Registry(PredictionStore):
    """Query layer bridging Python models and the coincast schema."""

    def __init__(self, db: Database, poll_seconds: float = DEFAULT_POLL_SECONDS) -> None:
        self._db = db
        self.poll_seconds = poll_seconds

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    def create_prediction(self, prediction: Prediction) -> int:
        """Insert a prediction with an empty ledger. Returns the prediction id."""
        rows = self._db.execute(
            "INSERT INTO coincast.predictions "
            "(author_id, author_name, author_photo_url, coin_id, coin_name, timeframe, "
            "price, rationale, research_links) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s) RETURNING id",
            (
                prediction.author_id,
                prediction.author_name,
                prediction.author_photo_url,
                prediction.coin_id,
                prediction.coin_name,
                prediction.timeframe.value,
                prediction.price,
                prediction.rationale,
                json.dumps(prediction.research_links),
            ),
        )
        return rows[0]["id"]

    def get_prediction(self, prediction_id: int) -> Prediction | None:
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM coincast.predictions WHERE id = %s",
            (prediction_id,),
        )
        if not rows:
            return None
        return self._row_to_prediction(rows[0])

    def get_predictions_for_coin(self, coin_id: str) -> list[Prediction]:
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM coincast.predictions "
            "WHERE coin_id = %s ORDER BY created_at DESC, id DESC",
            (coin_id,),
        )
        return [self._row_to_prediction(r) for r in rows]

    def get_predictions_for_coins(self, coin_ids: list[str]) -> dict[str, list[Prediction]]:
        """Predictions grouped by coin, for the coin list view."""
        grouped: dict[str, list[Prediction]] = {cid: [] for cid in coin_ids}
        if not coin_ids:
            return grouped
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM coincast.predictions "
            "WHERE coin_id = ANY(%s) ORDER BY created_at DESC, id DESC",
            (list(coin_ids),),
        )
        for r in rows:
            grouped.setdefault(r["coin_id"], []).append(self._row_to_prediction(r))
        return grouped

    def get_predictions_by_author(self, author_id: str) -> list[Prediction]:
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM coincast.predictions "
            "WHERE author_id = %s ORDER BY created_at DESC, id DESC",
            (author_id,),
        )
        return [self._row_to_prediction(r) for r in rows]

    def get_all_predictions(self, coin_id: str | None = None) -> list[Prediction]:
        if coin_id is not None:
            return self.get_predictions_for_coin(coin_id)
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM coincast.predictions ORDER BY id"
        )
        return [self._row_to_prediction(r) for r in rows]

    def delete_prediction(self, prediction_id: int, author_id: str) -> bool:
        """Delete a prediction owned by ``author_id``. Returns False if nothing matched."""
        rows = self._db.execute(
            "DELETE FROM coincast.predictions WHERE id = %s AND author_id = %s RETURNING id",
            (prediction_id, author_id),
        )
        return bool(rows)

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def apply_vote(
        self,
        prediction_id: int,
        voter_id: str,
        expected: int,
        delta: int,
        new_value: int,
    ) -> Prediction:
        """Conditional in-place update of one voter entry and the score.

        The score is incremented relative to the stored value, so concurrent
        votes by different voters both land. The WHERE clause guards against
        the same voter's entry having moved since it was read. Entries other
        than 1/-1 count as no vote, matching ``_parse_voters``, and are
        overwritten by the new vote.
        """
        rows = self._db.execute(
            "UPDATE coincast.predictions SET "
            "net_score = net_score + %s, "
            "voters = CASE WHEN %s::int = 0 THEN voters - %s::text "
            "ELSE jsonb_set(voters, ARRAY[%s::text], to_jsonb(%s::int)) END, "
            "updated_at = clock_timestamp() "
            "WHERE id = %s AND "
            "CASE WHEN jsonb_typeof(voters -> %s::text) = 'number' "
            "AND voters ->> %s::text IN ('1', '-1') "
            "THEN (voters ->> %s::text)::int ELSE 0 END = %s "
            f"RETURNING {PREDICTION_COLUMNS}",
            (
                delta,
                new_value, voter_id,
                voter_id, new_value,
                prediction_id, voter_id, voter_id, voter_id, expected,
            ),
        )
        if rows:
            return self._row_to_prediction(rows[0])

        exists = self._db.execute(
            "SELECT 1 AS ok FROM coincast.predictions WHERE id = %s",
            (prediction_id,),
        )
        if not exists:
            raise PredictionNotFound(prediction_id)
        raise VoteConflict(prediction_id, voter_id)

    def repair_net_score(self, prediction_id: int) -> Prediction | None:
        """Recompute net_score from the voters map inside the database."""
        rows = self._db.execute(
            "UPDATE coincast.predictions SET "
            "net_score = (SELECT COALESCE(SUM(value::text::int), 0) FROM jsonb_each(voters) "
            "WHERE jsonb_typeof(value) = 'number' AND value::text IN ('1', '-1')), "
            "updated_at = clock_timestamp() "
            f"WHERE id = %s RETURNING {PREDICTION_COLUMNS}",
            (prediction_id,),
        )
        if not rows:
            return None
        return self._row_to_prediction(rows[0])

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def ensure_user(self, identity: Identity) -> bool:
        """Create a profile row on first sign-in. Returns True if one was created."""
        rows = self._db.execute(
            "INSERT INTO coincast.users (user_id, display_name, photo_url) "
            "VALUES (%s, %s, %s) ON CONFLICT (user_id) DO NOTHING RETURNING user_id",
            (identity.uid, identity.display_name, identity.photo_url),
        )
        if rows:
            logger.info("Created profile for user %s", identity.uid)
        return bool(rows)

    def get_user(self, user_id: str) -> dict | None:
        rows = self._db.execute(
            "SELECT user_id, display_name, photo_url, description, twitter_handle, created_at "
            "FROM coincast.users WHERE user_id = %s",
            (user_id,),
        )
        return rows[0] if rows else None

    def update_user_profile(
        self,
        user_id: str,
        display_name: str,
        description: str,
        twitter_handle: str,
    ) -> dict | None:
        rows = self._db.execute(
            "UPDATE coincast.users SET display_name = %s, description = %s, "
            "twitter_handle = %s, updated_at = NOW() WHERE user_id = %s "
            "RETURNING user_id, display_name, photo_url, description, twitter_handle, created_at",
            (display_name, description, twitter_handle, user_id),
        )
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Row converters
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_prediction(r: dict) -> Prediction:
        try:
            timeframe = Timeframe(r["timeframe"])
        except ValueError:
            raise InvalidInput(
                f"Prediction {r['id']} has unknown timeframe {r['timeframe']!r}"
            ) from None
        return Prediction(
            id=r["id"],
            author_id=r["author_id"],
            author_name=r.get("author_name") or "",
            author_photo_url=r.get("author_photo_url") or "",
            coin_id=r["coin_id"],
            coin_name=r.get("coin_name") or "",
            timeframe=timeframe,
            price=Decimal(str(r["price"])),
            rationale=r["rationale"],
            research_links=_parse_links(r.get("research_links")),
            net_score=int(r["net_score"] or 0),
            voters=_parse_voters(r.get("voters"), r["id"]),
            created_at=r.get("created_at"),
        )


def _parse_links(raw) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    return [str(link) for link in raw if link]


def _parse_voters(raw, prediction_id) -> dict[str, int]:
    """Validate the stored voters map: integer +1/-1 entries only."""
    if raw is None:
        return {}
    if isinstance(raw, str):
        raw = json.loads(raw)
    voters: dict[str, int] = {}
    for voter_id, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, int) or value not in (1, -1):
            if value != 0:
                logger.warning(
                    "Dropping malformed vote %r by %s on prediction %s",
                    value, voter_id, prediction_id,
                )
            continue
        voters[str(voter_id)] = value
    return voters
