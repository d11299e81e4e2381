"""Response shaping shared by the route handlers and the websocket."""

from __future__ import annotations

from decimal import Decimal

from coincast.models.coin import Coin
from coincast.models.consensus import ConsensusSummary
from coincast.models.prediction import Prediction
from coincast.models.profile import UserProfile
from coincast.predictions import link_label, normalize_link
from coincast.voting.consensus import rank, summarize


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def format_prediction(p: Prediction, viewer_id: str | None = None) -> dict:
    return {
        "id": str(p.id) if p.id is not None else None,
        "authorId": p.author_id,
        "authorName": p.author_name,
        "authorPhotoUrl": p.author_photo_url,
        "coinId": p.coin_id,
        "coinName": p.coin_name,
        "timeframe": p.timeframe.value,
        "timeframeLabel": p.timeframe.label,
        "price": float(p.price),
        "rationale": p.rationale,
        "researchLinks": [
            {"url": link, "href": normalize_link(link), "label": link_label(link)}
            for link in p.research_links
        ],
        "netScore": p.net_score,
        "myVote": p.vote_of(viewer_id) if viewer_id else 0,
        "createdAt": p.created_at.isoformat() if p.created_at else None,
    }


def format_summary(summary: ConsensusSummary | None) -> dict | None:
    if summary is None:
        return None
    top = summary.highest_voted
    return {
        "timeframe": summary.timeframe.value,
        "timeframeLabel": summary.timeframe.label,
        "count": summary.count,
        "weightedAverage": float(summary.weighted_average),
        "totalVotes": summary.total_votes,
        "highestVoted": {
            "id": str(top.id) if top.id is not None else None,
            "price": float(top.price),
            "netScore": top.net_score,
            "authorName": top.author_name,
        },
    }


def format_coin(c: Coin) -> dict:
    return {
        "id": c.id,
        "symbol": c.symbol,
        "name": c.name,
        "image": c.image,
        "currentPrice": _num(c.current_price),
        "marketCap": _num(c.market_cap),
        "marketCapRank": c.market_cap_rank,
        "priceChangePercentage24h": _num(c.price_change_percentage_24h),
    }


def format_profile(profile: UserProfile) -> dict:
    return {
        "userId": profile.user_id,
        "displayName": profile.display_name,
        "photoUrl": profile.photo_url,
        "description": profile.description,
        "twitterHandle": profile.twitter_handle,
        "totalVotes": profile.total_votes,
        "predictionCount": profile.prediction_count,
        "averageVotes": round(profile.average_votes, 2),
    }


SORT_ORDERS = ("new", "top")


def snapshot_view(
    predictions: list[Prediction],
    timeframe: str | None,
    viewer_id: str | None = None,
    sort: str = "new",
) -> dict:
    """Listing plus consensus for one delivery of the prediction set.

    ``predictions`` arrives newest first; "top" reorders by net score.
    """
    if sort == "top":
        listing = rank(predictions, timeframe)
    else:
        listing = [p for p in predictions if timeframe is None or p.timeframe == timeframe]
    return {
        "predictions": [format_prediction(p, viewer_id) for p in listing],
        "summary": format_summary(summarize(predictions, timeframe)) if timeframe else None,
        "total": len(listing),
    }
