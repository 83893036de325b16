# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Health check endpoint for the backing stores."""

import logging

from beartype import beartype
from fastapi import APIRouter, Depends

from ...core.cache import Cache
from ...core.database import Database
from ...schemas.common import HealthStatus
from ..dependencies import get_cache_client, get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthStatus)
@beartype
async def health_check(
    db: Database = Depends(get_db),
    cache: Cache = Depends(get_cache_client),
) -> HealthStatus:
    """Report database pool and Redis connectivity."""
    database_ok = db.is_connected
    cache_ok = await cache.health_check()
    if not (database_ok and cache_ok):
        logger.warning("Health degraded: database=%s cache=%s", database_ok, cache_ok)
    return HealthStatus(
        status="healthy" if database_ok and cache_ok else "degraded",
        database=database_ok,
        cache=cache_ok,
    )
