"""FastAPI application factory with CORS, identity middleware, and lifespan management."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from coincast import __version__
from coincast.api.auth import identity_from_token
from coincast.api.deps import app_state
from coincast.config import load_config
from coincast.data.coingecko_client import CoinGeckoClient
from coincast.errors import InvalidInput, PredictionNotFound, Unauthenticated, VoteConflict
from coincast.models.identity import Identity
from coincast.predictions import PredictionManager
from coincast.registry.db import Database
from coincast.registry.queries import Registry
from coincast.voting.aggregator import reconcile_all
from coincast.voting.ledger import VoteLedger

logger = logging.getLogger(__name__)

API_PREFIX = "/api/coincast"
RECONCILE_INTERVAL = 3600  # seconds


async def _reconcile_loop(registry: Registry) -> None:
    """Background task: heal score drift across all predictions once an hour."""
    while True:
        try:
            predictions = await asyncio.to_thread(registry.get_all_predictions)
            repaired = await asyncio.to_thread(reconcile_all, registry, predictions)
            if repaired:
                logger.info("Reconcile sweep repaired %d predictions", len(repaired))
        except Exception:
            logger.warning("Reconcile sweep failed", exc_info=True)
        await asyncio.sleep(RECONCILE_INTERVAL)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown of DB, market feed, and voting services."""
    config = load_config()

    db = Database(config.db_dsn)
    db.connect()
    registry = Registry(db, poll_seconds=config.snapshot_poll_seconds)
    market = CoinGeckoClient.from_config(config)

    app_state.config = config
    app_state.db = db
    app_state.registry = registry
    app_state.ledger = VoteLedger(registry, retry_limit=config.vote_retry_limit)
    app_state.prediction_manager = PredictionManager(registry)
    app_state.market = market

    reconcile_task = asyncio.create_task(_reconcile_loop(registry))
    logger.info("API started: DB, market feed, and reconcile loop ready")
    yield

    reconcile_task.cancel()
    market.close()
    db.close()
    logger.info("API shutdown complete")


class IdentityMiddleware(BaseHTTPMiddleware):
    """Resolve the caller's identity from the session cookie or bearer token.

    Identity is attached to ``request.state`` and handed to the core
    explicitly; requests without one proceed anonymously.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.identity = self._resolve(request)
        return await call_next(request)

    @staticmethod
    def _resolve(request: Request) -> Identity | None:
        config = app_state.config
        if not config or not config.auth_secret_key:
            return None

        # Trusted backends act on behalf of a user id
        internal_token = request.headers.get("x-internal-token")
        if internal_token and config.internal_api_token and internal_token == config.internal_api_token:
            uid = request.headers.get("x-user-id")
            return Identity(uid=uid) if uid else None

        token = request.cookies.get("session")
        auth_header = request.headers.get("authorization", "")
        if auth_header.lower().startswith("bearer "):
            token = auth_header[7:].strip()
        if not token:
            return None
        return identity_from_token(token, config.auth_secret_key)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(Unauthenticated)
    async def _unauthenticated(request: Request, exc: Unauthenticated):
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(InvalidInput)
    async def _invalid_input(request: Request, exc: InvalidInput):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(VoteConflict)
    async def _vote_conflict(request: Request, exc: VoteConflict):
        return JSONResponse(
            status_code=409,
            content={"detail": "Vote could not be applied, please try again", "transient": True},
        )

    @app.exception_handler(PredictionNotFound)
    async def _not_found(request: Request, exc: PredictionNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (useful for testing
            where deps are injected via app_state directly).
    """
    app = FastAPI(
        title="Coincast API",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(IdentityMiddleware)
    _register_error_handlers(app)

    from coincast.api import ws
    from coincast.api.routes import auth, coins, predictions, system, users

    app.include_router(auth.router, prefix=API_PREFIX, tags=["auth"])
    app.include_router(coins.router, prefix=API_PREFIX, tags=["coins"])
    app.include_router(predictions.router, prefix=API_PREFIX, tags=["predictions"])
    app.include_router(users.router, prefix=API_PREFIX, tags=["users"])
    app.include_router(system.router, prefix=API_PREFIX, tags=["system"])
    app.include_router(ws.router, prefix=API_PREFIX, tags=["websocket"])

    return app
