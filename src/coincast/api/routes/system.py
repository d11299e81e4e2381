"""System health endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from coincast import __version__
from coincast.api.deps import app_state, get_registry
from coincast.registry.queries import Registry

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health(registry: Registry = Depends(get_registry)) -> dict:
    db_ok = app_state.db.health_check() if app_state.db is not None else False
    return {
        "status": "ok" if db_ok else "degraded",
        "database": db_ok,
        "version": __version__,
        "uptimeSeconds": int(time.time() - _start_time),
        "pollSeconds": registry.poll_seconds,
    }
