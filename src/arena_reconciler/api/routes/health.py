"""Health check route handlers for the Arena Reconciler API.

``GET /api/health``
    Dependency check: verifies the process can reach the database
    (``SELECT 1``) and the Celery broker (Redis ``PING``).  Always returns
    HTTP 200; the ``status`` field distinguishes ``"ok"`` from
    ``"degraded"``.

The process-level liveness probe (``GET /health``) lives in ``api/main.py``.
These endpoints are diagnostic and must never raise HTTP 5xx errors.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Annotated

import redis.asyncio as aioredis
import sqlalchemy as sa
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_reconciler import __version__
from arena_reconciler.api.dependencies import get_session_factory
from arena_reconciler.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


async def _check_database(session_factory: async_sessionmaker[AsyncSession]) -> str:
    """Run ``SELECT 1`` against the configured database.

    Returns:
        ``"ok"`` if the query succeeds, ``"error"`` otherwise.
    """
    try:
        async with session_factory() as session:
            await session.execute(sa.text("SELECT 1"))
        return "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        return "error"


async def _check_broker(broker_url: str) -> str:
    """Send ``PING`` to the Redis instance Celery uses as its broker.

    Returns:
        ``"ok"`` if Redis responds, ``"error"`` otherwise.
    """
    try:
        client: aioredis.Redis = aioredis.from_url(
            broker_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        await client.ping()
        await client.aclose()
        return "ok"
    except Exception:
        logger.exception("Health check: broker unreachable")
        return "error"


@router.get("/api/health", include_in_schema=True)
async def system_health(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> JSONResponse:
    """Return database and broker connectivity.

    Returns:
        JSON with keys: ``status``, ``version``, ``database``, ``broker``,
        ``timestamp``.
    """
    db_status, broker_status = await asyncio.gather(
        _check_database(session_factory),
        _check_broker(settings.celery_broker_url),
    )
    overall = "ok" if db_status == "ok" and broker_status == "ok" else "degraded"

    payload = {
        "status": overall,
        "version": __version__,
        "database": db_status,
        "broker": broker_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("system_health_check", extra={"health": payload})
    return JSONResponse(payload)
