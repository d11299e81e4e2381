"""Coin list and detail endpoints backed by the market feed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from coincast.api.deps import get_market, get_registry
from coincast.api.routes.shared import format_coin
from coincast.data.coingecko_client import CoinGeckoClient
from coincast.models.prediction import TIMEFRAME_LABELS
from coincast.registry.queries import Registry
from coincast.voting.consensus import summarize_all

router = APIRouter()


@router.get("/timeframes")
def list_timeframes() -> dict:
    return {
        "timeframes": [
            {"value": tf.value, "label": label} for tf, label in TIMEFRAME_LABELS.items()
        ],
    }


@router.get("/coins")
def list_coins(
    limit: int = Query(default=10, ge=1, le=100),
    market: CoinGeckoClient = Depends(get_market),
    registry: Registry = Depends(get_registry),
) -> dict:
    """Top coins by market cap, each with per-timeframe prediction counts and consensus."""
    coins = market.get_top_coins(limit)
    by_coin = registry.get_predictions_for_coins([c.id for c in coins])

    items = []
    for coin in coins:
        summaries = summarize_all(by_coin.get(coin.id, []))
        items.append({
            **format_coin(coin),
            "predictions": {
                tf.value: {
                    "count": s.count,
                    "weightedAverage": float(s.weighted_average),
                    "totalVotes": s.total_votes,
                }
                for tf, s in summaries.items()
            },
        })
    return {"coins": items}


@router.get("/coins/{coin_id}")
def get_coin(coin_id: str, market: CoinGeckoClient = Depends(get_market)) -> dict:
    coin = market.get_coin(coin_id)
    if coin is None:
        raise HTTPException(status_code=404, detail="Coin not found")
    return {"coin": format_coin(coin)}
