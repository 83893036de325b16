# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Durable, resumable quote sessions backed by PostgreSQL.

The active session for a contact key is additionally pointed to from Redis
so that resume checks on page load avoid a table scan. The pointer is best
effort: Redis failures are logged and lookups fall back to the database.
"""

import json
import logging
from typing import Any
from uuid import UUID

import redis.asyncio as redis
from beartype import beartype

from ..core.cache import Cache
from ..core.config import get_settings
from ..core.database import Database
from ..core.result_types import Err, Ok, Result
from ..models.session import QuoteSession, QuoteSessionCreate, QuoteSessionUpdate
from .performance_monitor import performance_monitor

logger = logging.getLogger(__name__)

_JSON_COLUMNS = frozenset(
    {"selected_quote", "addons_selected", "proposal_data", "payment_result"}
)


class QuoteSessionStore:
    """Persist in-progress purchase attempts keyed by session id."""

    def __init__(self, db: Database, cache: Cache) -> None:
        """Initialize store with database and cache."""
        self._db = db
        self._cache = cache
        self._cache_prefix = "quote_session:active:"
        self._pointer_ttl = get_settings().quote_session_ttl_seconds

    @beartype
    @performance_monitor("create_quote_session")
    async def create(self, data: QuoteSessionCreate) -> Result[QuoteSession, str]:
        """Create a session, superseding older incomplete ones for the key."""
        try:
            async with self._db.transaction() as conn:
                superseded = await conn.execute(
                    """
                    UPDATE quote_sessions
                    SET discarded_at = now(), updated_at = now()
                    WHERE phone_number = $1
                      AND is_complete = false
                      AND discarded_at IS NULL
                    """,
                    data.contact_key,
                )
                row = await conn.fetchrow(
                    """
                    INSERT INTO quote_sessions (
                        phone_number, line_of_business, current_step
                    ) VALUES ($1, $2, $3)
                    RETURNING *
                    """,
                    data.contact_key,
                    data.line_of_business.value,
                    data.current_step.value,
                )
        except Exception as e:
            return Err(f"Failed to create quote session: {str(e)}")

        if not row:
            return Err("Failed to create quote session")

        if superseded and superseded != "UPDATE 0":
            logger.info("Superseded incomplete sessions for %s", data.contact_key)

        session = self._row_to_session(row)
        await self._write_pointer(session.contact_key, session.id)
        return Ok(session)

    @beartype
    @performance_monitor("get_quote_session")
    async def get(self, session_id: UUID) -> Result[QuoteSession | None, str]:
        """Get session by ID."""
        try:
            row = await self._db.fetchrow(
                "SELECT * FROM quote_sessions WHERE id = $1", session_id
            )
        except Exception as e:
            return Err(f"Database error: {str(e)}")

        if not row:
            return Ok(None)
        return Ok(self._row_to_session(row))

    @beartype
    @performance_monitor("find_incomplete_quote_session")
    async def find_incomplete(self, contact_key: str) -> Result[QuoteSession | None, str]:
        """Return the single surfaced incomplete session for a contact key."""
        cached_id = await self._read_pointer(contact_key)
        if cached_id:
            result = await self.get(UUID(str(cached_id)))
            if isinstance(result, Err):
                return result
            session = result.unwrap()
            if session is not None and session.is_resumable:
                return Ok(session)
            await self._clear_pointer(contact_key)

        try:
            row = await self._db.fetchrow(
                """
                SELECT * FROM quote_sessions
                WHERE phone_number = $1
                  AND is_complete = false
                  AND discarded_at IS NULL
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                contact_key,
            )
        except Exception as e:
            return Err(f"Database error: {str(e)}")

        if not row:
            return Ok(None)

        session = self._row_to_session(row)
        await self._write_pointer(contact_key, session.id)
        return Ok(session)

    @beartype
    @performance_monitor("update_quote_session")
    async def update(
        self, session_id: UUID, update: QuoteSessionUpdate
    ) -> Result[QuoteSession, str]:
        """Write only the fields explicitly set on ``update``."""
        changes = update.model_dump(mode="json", exclude_unset=True)
        if not changes:
            current = await self.get(session_id)
            if isinstance(current, Err):
                return current
            session = current.unwrap()
            if session is None:
                return Err("Quote session not found")
            return Ok(session)

        assignments = []
        params: list[Any] = [session_id]
        for column, value in changes.items():
            params.append(value)
            assignments.append(f"{column} = ${len(params)}")

        query = f"""
            UPDATE quote_sessions
            SET {", ".join(assignments)}, updated_at = now()
            WHERE id = $1 AND is_complete = false AND discarded_at IS NULL
            RETURNING *
        """  # nosec B608 - column names come from QuoteSessionUpdate fields

        try:
            row = await self._db.fetchrow(query, *params)
        except Exception as e:
            return Err(f"Failed to update quote session: {str(e)}")

        if not row:
            return Err("Quote session not found or no longer active")
        return Ok(self._row_to_session(row))

    @beartype
    @performance_monitor("complete_quote_session")
    async def complete(self, session_id: UUID, policy_id: UUID) -> Result[QuoteSession, str]:
        """Mark the session complete and link it to the issued policy."""
        try:
            row = await self._db.fetchrow(
                """
                UPDATE quote_sessions
                SET is_complete = true, policy_id = $2, updated_at = now()
                WHERE id = $1
                RETURNING *
                """,
                session_id,
                policy_id,
            )
        except Exception as e:
            return Err(f"Failed to complete quote session: {str(e)}")

        if not row:
            return Err("Quote session not found")

        session = self._row_to_session(row)
        await self._clear_pointer(session.contact_key)
        return Ok(session)

    @beartype
    @performance_monitor("discard_quote_session")
    async def discard(self, session_id: UUID) -> Result[None, str]:
        """Discard a session. Discarding twice is a no-op."""
        try:
            row = await self._db.fetchrow(
                """
                UPDATE quote_sessions
                SET discarded_at = COALESCE(discarded_at, now()), updated_at = now()
                WHERE id = $1
                RETURNING phone_number
                """,
                session_id,
            )
        except Exception as e:
            return Err(f"Failed to discard quote session: {str(e)}")

        if row:
            await self._clear_pointer(row["phone_number"])
        return Ok(None)

    def _pointer_key(self, contact_key: str) -> str:
        return f"{self._cache_prefix}{contact_key}"

    async def _read_pointer(self, contact_key: str) -> Any:
        try:
            return await self._cache.get(self._pointer_key(contact_key))
        except (redis.RedisError, OSError) as e:
            logger.warning("Session pointer read failed for %s: %s", contact_key, e)
            return None

    async def _write_pointer(self, contact_key: str, session_id: UUID) -> None:
        try:
            await self._cache.set(
                self._pointer_key(contact_key), str(session_id), self._pointer_ttl
            )
        except (redis.RedisError, OSError) as e:
            logger.warning("Session pointer write failed for %s: %s", contact_key, e)

    async def _clear_pointer(self, contact_key: str) -> None:
        try:
            await self._cache.delete(self._pointer_key(contact_key))
        except (redis.RedisError, OSError) as e:
            logger.warning("Session pointer delete failed for %s: %s", contact_key, e)

    def _row_to_session(self, row: Any) -> QuoteSession:
        """Convert database row to QuoteSession model."""
        data = dict(row)
        data["contact_key"] = data.pop("phone_number")
        for column in _JSON_COLUMNS:
            value = data.get(column)
            if isinstance(value, str):
                data[column] = json.loads(value)
        if data.get("addons_selected") is None:
            data["addons_selected"] = []
        return QuoteSession.model_validate(data)
