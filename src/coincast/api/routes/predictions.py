"""Prediction listing, submission and voting endpoints."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from coincast.api.deps import (
    get_identity,
    get_ledger,
    get_prediction_manager,
    get_registry,
    require_identity,
)
from coincast.api.routes.shared import SORT_ORDERS, format_prediction, snapshot_view
from coincast.models.identity import Identity
from coincast.models.prediction import Timeframe
from coincast.predictions import PredictionManager
from coincast.registry.queries import Registry
from coincast.voting.aggregator import reconcile
from coincast.voting.ledger import VoteLedger

logger = logging.getLogger(__name__)

router = APIRouter()


class SubmitPredictionRequest(BaseModel):
    timeframe: str
    price: str | float
    rationale: str
    researchLinks: list[str] = Field(default_factory=list)
    coinName: str = ""


class VoteRequest(BaseModel):
    value: Literal[1, -1]


def _check_timeframe(timeframe: str | None) -> None:
    if timeframe is not None and timeframe not in Timeframe._value2member_map_:
        raise HTTPException(status_code=422, detail=f"Unknown timeframe {timeframe!r}")


@router.get("/coins/{coin_id}/predictions")
def list_predictions(
    coin_id: str,
    timeframe: str | None = None,
    sort: str = Query(default="new"),
    registry: Registry = Depends(get_registry),
    viewer: Identity | None = Depends(get_identity),
) -> dict:
    """Current predictions for a coin with the consensus for ``timeframe``.

    ``summary`` is null when no prediction targets the timeframe.
    """
    _check_timeframe(timeframe)
    if sort not in SORT_ORDERS:
        raise HTTPException(status_code=422, detail=f"sort must be one of {SORT_ORDERS}")
    predictions = registry.get_predictions_for_coin(coin_id)
    view = snapshot_view(predictions, timeframe, viewer.uid if viewer else None, sort=sort)
    return {"coinId": coin_id, "timeframe": timeframe, **view}


@router.post("/coins/{coin_id}/predictions", status_code=201)
def submit_prediction(
    coin_id: str,
    body: SubmitPredictionRequest,
    manager: PredictionManager = Depends(get_prediction_manager),
    author: Identity | None = Depends(get_identity),
) -> dict:
    prediction = manager.submit(
        author,
        coin_id=coin_id,
        timeframe=body.timeframe,
        price=body.price,
        rationale=body.rationale,
        research_links=body.researchLinks,
        coin_name=body.coinName,
    )
    return {"prediction": format_prediction(prediction, author.uid if author else None)}


@router.get("/predictions/{prediction_id}")
def get_prediction(
    prediction_id: int,
    registry: Registry = Depends(get_registry),
    viewer: Identity | None = Depends(get_identity),
) -> dict:
    prediction = registry.get_prediction(prediction_id)
    if prediction is None:
        raise HTTPException(status_code=404, detail="Prediction not found")
    prediction = reconcile(registry, prediction)
    return {"prediction": format_prediction(prediction, viewer.uid if viewer else None)}


@router.post("/predictions/{prediction_id}/vote")
def vote(
    prediction_id: int,
    body: VoteRequest,
    ledger: VoteLedger = Depends(get_ledger),
    voter: Identity | None = Depends(get_identity),
) -> dict:
    """Cast, switch or withdraw the caller's vote.

    Voting again with the same value withdraws the vote. A prediction deleted
    in the meantime yields ``{"prediction": null}``.
    """
    updated = ledger.cast_vote(prediction_id, voter, body.value)
    if updated is None:
        return {"prediction": None}
    return {"prediction": format_prediction(updated, voter.uid if voter else None)}


@router.delete("/predictions/{prediction_id}")
def delete_prediction(
    prediction_id: int,
    registry: Registry = Depends(get_registry),
    author: Identity = Depends(require_identity),
) -> dict:
    if not registry.delete_prediction(prediction_id, author.uid):
        raise HTTPException(status_code=404, detail="Prediction not found")
    logger.info("Prediction %s deleted by %s", prediction_id, author.uid)
    return {"ok": True}
