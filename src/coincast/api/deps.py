"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from fastapi import Request

from coincast.config import AppConfig
from coincast.data.coingecko_client import CoinGeckoClient
from coincast.errors import Unauthenticated
from coincast.models.identity import Identity
from coincast.predictions import PredictionManager
from coincast.registry.db import Database
from coincast.registry.queries import Registry
from coincast.voting.ledger import VoteLedger


class AppState:
    """Holds shared application state initialised during lifespan."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.registry: Registry | None = None
        self.ledger: VoteLedger | None = None
        self.prediction_manager: PredictionManager | None = None
        self.market: CoinGeckoClient | None = None


# Singleton shared across the app
app_state = AppState()


def get_registry() -> Registry:
    if app_state.registry is None:
        raise RuntimeError("Registry not initialised")
    return app_state.registry


def get_ledger() -> VoteLedger:
    if app_state.ledger is None:
        raise RuntimeError("VoteLedger not initialised")
    return app_state.ledger


def get_prediction_manager() -> PredictionManager:
    if app_state.prediction_manager is None:
        raise RuntimeError("PredictionManager not initialised")
    return app_state.prediction_manager


def get_market() -> CoinGeckoClient:
    if app_state.market is None:
        raise RuntimeError("CoinGeckoClient not initialised")
    return app_state.market


def get_identity(request: Request) -> Identity | None:
    """Identity resolved by IdentityMiddleware for this request, if any."""
    return getattr(request.state, "identity", None)


def require_identity(request: Request) -> Identity:
    identity = get_identity(request)
    if identity is None:
        raise Unauthenticated()
    return identity
