"""Unit tests for the quote session store."""

import json
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from broker_core.core.cache import Cache
from broker_core.core.result_types import Err
from broker_core.models.common import LineOfBusiness
from broker_core.models.payment import PaymentStatus
from broker_core.models.purchase import PurchaseStep
from broker_core.models.session import QuoteSessionCreate, QuoteSessionUpdate
from broker_core.services.quote_session_store import QuoteSessionStore
from tests.fixtures.test_data import make_quote, session_row

CONTACT = "+919800000001"
POINTER = f"quote_session:active:{CONTACT}"


@pytest.fixture
def store(mock_db: MagicMock, fake_cache: Cache) -> QuoteSessionStore:
    return QuoteSessionStore(mock_db, fake_cache)


class TestCreate:
    """Opening a session supersedes older ones."""

    @pytest.mark.asyncio
    async def test_create_supersedes_and_caches_pointer(
        self,
        store: QuoteSessionStore,
        mock_conn: MagicMock,
        fake_cache: Cache,
    ) -> None:
        row = session_row()
        mock_conn.execute.return_value = "UPDATE 1"
        mock_conn.fetchrow.return_value = row

        result = await store.create(
            QuoteSessionCreate(contact_key=CONTACT, line_of_business=LineOfBusiness.MOTOR)
        )

        assert result.is_ok()
        session = result.unwrap()
        assert session.contact_key == CONTACT
        assert session.current_step == PurchaseStep.LOB
        assert "SET discarded_at = now()" in mock_conn.execute.await_args.args[0]
        assert await fake_cache.get(POINTER) == str(row["id"])

    @pytest.mark.asyncio
    async def test_create_failure(self, store: QuoteSessionStore, mock_conn: MagicMock) -> None:
        mock_conn.fetchrow.side_effect = RuntimeError("too many connections")

        result = await store.create(
            QuoteSessionCreate(contact_key=CONTACT, line_of_business=LineOfBusiness.MOTOR)
        )

        assert isinstance(result, Err)
        assert "too many connections" in result.err_value


class TestFindIncomplete:
    """Resume lookup via the cached pointer."""

    @pytest.mark.asyncio
    async def test_cached_pointer_used(
        self, store: QuoteSessionStore, mock_db: MagicMock, fake_cache: Cache
    ) -> None:
        row = session_row(current_step="Quote")
        await fake_cache.set(POINTER, str(row["id"]))
        mock_db.fetchrow.return_value = row

        result = await store.find_incomplete(CONTACT)

        session = result.unwrap()
        assert session is not None
        assert session.id == row["id"]
        assert mock_db.fetchrow.await_count == 1
        assert "WHERE id = $1" in mock_db.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_stale_pointer_falls_back_to_query(
        self, store: QuoteSessionStore, mock_db: MagicMock, fake_cache: Cache
    ) -> None:
        """A pointer to a completed session is dropped."""
        stale = session_row(is_complete=True)
        current = session_row()
        await fake_cache.set(POINTER, str(stale["id"]))
        mock_db.fetchrow = AsyncMock(side_effect=[stale, current])

        result = await store.find_incomplete(CONTACT)

        assert result.unwrap().id == current["id"]
        assert await fake_cache.get(POINTER) == str(current["id"])

    @pytest.mark.asyncio
    async def test_nothing_to_resume(self, store: QuoteSessionStore, fake_cache: Cache) -> None:
        result = await store.find_incomplete(CONTACT)

        assert result.is_ok()
        assert result.unwrap() is None
        assert not await fake_cache.exists(POINTER)

    @pytest.mark.asyncio
    async def test_json_columns_decoded(
        self, store: QuoteSessionStore, mock_db: MagicMock
    ) -> None:
        quote = make_quote()
        mock_db.fetchrow.return_value = session_row(
            selected_quote=json.dumps(quote.model_dump(mode="json")),
            addons_selected=None,
        )

        session = (await store.find_incomplete(CONTACT)).unwrap()

        assert session is not None
        assert session.selected_quote is not None
        assert session.selected_quote["total_premium"] == "16992"
        assert session.addons_selected == []


class TestUpdate:
    """Partial writes."""

    @pytest.mark.asyncio
    async def test_only_set_fields_written(
        self, store: QuoteSessionStore, mock_db: MagicMock
    ) -> None:
        session_id = uuid4()
        mock_db.fetchrow.return_value = session_row(id=session_id, current_step="Payment")

        result = await store.update(
            session_id,
            QuoteSessionUpdate(
                current_step=PurchaseStep.PAYMENT, payment_status=PaymentStatus.FAILED
            ),
        )

        assert result.is_ok()
        query, *params = mock_db.fetchrow.await_args.args
        assert "current_step = $2, payment_status = $3" in query
        assert "discarded_at IS NULL" in query
        assert params == [session_id, "Payment", "failed"]

    @pytest.mark.asyncio
    async def test_inactive_session(self, store: QuoteSessionStore) -> None:
        result = await store.update(uuid4(), QuoteSessionUpdate(product_id="motor-comp"))

        assert isinstance(result, Err)
        assert result.err_value == "Quote session not found or no longer active"


class TestCompleteAndDiscard:
    """Terminal transitions clear the pointer."""

    @pytest.mark.asyncio
    async def test_complete_links_policy(
        self, store: QuoteSessionStore, mock_db: MagicMock, fake_cache: Cache
    ) -> None:
        policy_id = uuid4()
        row = session_row(is_complete=True, policy_id=policy_id)
        await fake_cache.set(POINTER, str(row["id"]))
        mock_db.fetchrow.return_value = row

        session = (await store.complete(row["id"], policy_id)).unwrap()

        assert session.is_complete
        assert session.policy_id == policy_id
        assert not await fake_cache.exists(POINTER)

    @pytest.mark.asyncio
    async def test_discard_twice_is_noop(
        self, store: QuoteSessionStore, mock_db: MagicMock, fake_cache: Cache
    ) -> None:
        session_id = uuid4()
        await fake_cache.set(POINTER, str(session_id))
        mock_db.fetchrow.return_value = {"phone_number": CONTACT}

        first = await store.discard(session_id)
        second = await store.discard(session_id)

        assert first.is_ok()
        assert second.is_ok()
        assert "COALESCE(discarded_at, now())" in mock_db.fetchrow.await_args.args[0]
        assert not await fake_cache.exists(POINTER)


class TestPointerUnavailable:
    """Redis outages degrade to database lookups."""

    @pytest.fixture
    def offline_store(self, mock_db: MagicMock, mock_cache: MagicMock) -> QuoteSessionStore:
        outage = RedisConnectionError("Connection refused")
        mock_cache.get.side_effect = outage
        mock_cache.set.side_effect = outage
        mock_cache.delete.side_effect = outage
        return QuoteSessionStore(mock_db, mock_cache)

    @pytest.mark.asyncio
    async def test_find_incomplete_uses_database(
        self, offline_store: QuoteSessionStore, mock_db: MagicMock, mock_cache: MagicMock
    ) -> None:
        row = session_row(current_step="Provider")
        mock_db.fetchrow.return_value = row

        result = await offline_store.find_incomplete(CONTACT)

        assert result.unwrap().id == row["id"]
        assert "ORDER BY updated_at DESC" in mock_db.fetchrow.await_args.args[0]
        mock_cache.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_still_returns_session(
        self, offline_store: QuoteSessionStore, mock_conn: MagicMock
    ) -> None:
        row = session_row()
        mock_conn.fetchrow.return_value = row

        result = await offline_store.create(
            QuoteSessionCreate(contact_key=CONTACT, line_of_business=LineOfBusiness.MOTOR)
        )

        assert result.unwrap().id == row["id"]

    @pytest.mark.asyncio
    async def test_complete_and_discard_still_ok(
        self, offline_store: QuoteSessionStore, mock_db: MagicMock
    ) -> None:
        policy_id = uuid4()
        row = session_row(is_complete=True, policy_id=policy_id)
        mock_db.fetchrow.return_value = row

        completed = await offline_store.complete(row["id"], policy_id)
        mock_db.fetchrow.return_value = {"phone_number": CONTACT}
        discarded = await offline_store.discard(row["id"])

        assert completed.unwrap().policy_id == policy_id
        assert discarded.is_ok()
