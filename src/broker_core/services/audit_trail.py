# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Append-only writers for policy status history and audit logs."""

import logging
from typing import Any

import asyncpg
from beartype import beartype

from ..core.database import Database
from ..core.result_types import Err, Ok, Result
from ..models.policy import AuditLogEntry, PolicyStatusHistoryEntry

logger = logging.getLogger(__name__)


class AuditTrail:
    """Insert-only access to ``policy_status_history`` and ``audit_logs``."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @beartype
    async def record_status_change(
        self,
        entry: PolicyStatusHistoryEntry,
        conn: asyncpg.Connection | None = None,
    ) -> Result[None, str]:
        """Append a status transition."""
        return await self._insert(
            """
            INSERT INTO policy_status_history (
                policy_id, previous_status, new_status, updated_by,
                changed_by_role, timestamp
            ) VALUES ($1, $2, $3, $4, $5, $6)
            """,
            (
                entry.policy_id,
                entry.previous_status.value if entry.previous_status else None,
                entry.new_status.value,
                entry.updated_by,
                entry.changed_by_role.value,
                entry.timestamp,
            ),
            conn,
        )

    @beartype
    async def record_event(
        self,
        entry: AuditLogEntry,
        conn: asyncpg.Connection | None = None,
    ) -> Result[None, str]:
        """Append a business event."""
        result = await self._insert(
            """
            INSERT INTO audit_logs (
                event, entity_type, entity_id, policy_id, metadata, timestamp
            ) VALUES ($1, $2, $3, $4, $5, $6)
            """,
            (
                entry.event,
                entry.entity_type,
                entry.entity_id,
                entry.policy_id,
                entry.model_dump(mode="json")["metadata"],
                entry.timestamp,
            ),
            conn,
        )
        if result.is_ok():
            logger.info("Audit: %s (%s %s)", entry.event, entry.entity_type, entry.entity_id)
        return result

    async def _insert(
        self,
        query: str,
        params: tuple[Any, ...],
        conn: asyncpg.Connection | None,
    ) -> Result[None, str]:
        try:
            if conn is not None:
                await conn.execute(query, *params)
            else:
                await self._db.execute(query, *params)
        except Exception as e:
            return Err(f"Audit write failed: {str(e)}")
        return Ok(None)
