"""WebSocket endpoint streaming live prediction snapshots for a coin."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from coincast.api.auth import identity_from_token
from coincast.api.deps import app_state
from coincast.api.routes.shared import SORT_ORDERS, snapshot_view
from coincast.errors import CoincastError
from coincast.models.prediction import VOTE_VALUES, Prediction, Timeframe
from coincast.voting.ledger import apply_vote_locally

logger = logging.getLogger(__name__)

router = APIRouter()


def _valid_timeframe(value: str | None) -> bool:
    return value is None or value in Timeframe._value2member_map_


def _preview_vote(
    predictions: list[Prediction], prediction_id: int, voter_id: str, value: int,
) -> list[Prediction] | None:
    """The snapshot as it will look once the vote lands, or None if it can't be previewed."""
    if value not in VOTE_VALUES:
        return None
    if not any(p.id == prediction_id for p in predictions):
        return None
    return [
        apply_vote_locally(p, voter_id, value) if p.id == prediction_id else p
        for p in predictions
    ]


@router.websocket("/ws/coins/{coin_id}/predictions")
async def ws_predictions(websocket: WebSocket, coin_id: str):
    """Push the full prediction set and consensus on every change.

    Every message is a complete snapshot; clients replace their state with it.
    Clients may send ``{"timeframe": "...", "sort": "..."}`` to switch the view,
    which re-sends the latest snapshot immediately.

    Signed-in viewers may also send ``{"type": "vote", "predictionId": 1,
    "value": 1}``. The vote is previewed at once as a snapshot flagged
    ``optimistic``; the store's confirmed snapshot follows, or on failure an
    error and the last confirmed snapshot.
    """
    await websocket.accept()

    registry = app_state.registry
    if registry is None:
        await websocket.send_json({"type": "error", "message": "Registry not available"})
        await websocket.close()
        return

    view = {
        "timeframe": websocket.query_params.get("timeframe"),
        "sort": websocket.query_params.get("sort") or "new",
    }
    if not _valid_timeframe(view["timeframe"]) or view["sort"] not in SORT_ORDERS:
        await websocket.send_json({"type": "error", "message": "Invalid timeframe or sort"})
        await websocket.close(code=4400)
        return

    identity = None
    config = app_state.config
    if config and config.auth_secret_key:
        token = websocket.query_params.get("token") or websocket.cookies.get("session")
        identity = identity_from_token(token or "", config.auth_secret_key)
    viewer_id = identity.uid if identity else None

    latest: list[Prediction] | None = None
    send_lock = asyncio.Lock()

    async def _send(message: dict) -> None:
        async with send_lock:
            await websocket.send_json(message)

    async def _send_snapshot(
        predictions: list[Prediction] | None = None, optimistic: bool = False,
    ) -> None:
        predictions = latest if predictions is None else predictions
        if predictions is None:
            return
        await _send({
            "type": "snapshot",
            "coinId": coin_id,
            "timeframe": view["timeframe"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "optimistic": optimistic,
            **snapshot_view(predictions, view["timeframe"], viewer_id, sort=view["sort"]),
        })

    async def _vote(message: dict) -> None:
        if identity is None:
            await _send({"type": "error", "message": "Sign in to vote"})
            return
        ledger = app_state.ledger
        if ledger is None:
            await _send({"type": "error", "message": "Voting not available"})
            return
        try:
            prediction_id = int(message.get("predictionId"))
            value = int(message.get("value"))
        except (TypeError, ValueError):
            await _send({"type": "error", "message": "Vote needs a predictionId and a value"})
            return

        if latest is not None:
            preview = _preview_vote(latest, prediction_id, identity.uid, value)
            if preview is not None:
                await _send_snapshot(preview, optimistic=True)

        try:
            updated = await asyncio.to_thread(ledger.cast_vote, prediction_id, identity, value)
        except CoincastError as exc:
            logger.info("WebSocket vote on prediction %s rejected: %s", prediction_id, exc)
            await _send({"type": "error", "message": str(exc)})
            await _send_snapshot()
            return
        if updated is None:
            await _send({"type": "error", "message": f"Prediction {prediction_id} not found"})
            await _send_snapshot()

    async def _pump() -> None:
        nonlocal latest
        stream = registry.subscribe(coin_id)
        try:
            async for snapshot in stream:
                latest = snapshot
                await _send_snapshot()
        finally:
            await stream.aclose()

    pump = asyncio.create_task(_pump())
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(message, dict):
                continue
            if message.get("type") == "vote":
                await _vote(message)
                continue
            timeframe = message.get("timeframe", view["timeframe"])
            sort = message.get("sort", view["sort"])
            if _valid_timeframe(timeframe) and sort in SORT_ORDERS:
                view["timeframe"], view["sort"] = timeframe, sort
                await _send_snapshot()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error for coin %s", coin_id)
    finally:
        pump.cancel()
        try:
            await pump
        except (asyncio.CancelledError, WebSocketDisconnect):
            pass
        except Exception:
            logger.debug("Snapshot pump ended with error", exc_info=True)
