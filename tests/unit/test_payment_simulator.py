"""Unit tests for the simulated payment gateway."""

import random
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from broker_core.core.result_types import Err
from broker_core.core.retry import RetryPolicy
from broker_core.models.payment import PaymentGateway, PaymentMethod, PaymentRequest
from broker_core.services.payment_simulator import DECLINED_MESSAGE, PaymentSimulator
from tests.fixtures.test_data import NOW


def build_simulator(
    mock_db: MagicMock,
    no_retry: RetryPolicy,
    *,
    success_rate: float = 1.0,
    delay_seconds: float = 0.0,
    timeout_seconds: float = 5.0,
) -> PaymentSimulator:
    return PaymentSimulator(
        mock_db,
        delay_seconds=delay_seconds,
        success_rate=success_rate,
        timeout_seconds=timeout_seconds,
        rng=random.Random(7),
        clock=lambda: NOW,
        retry_policy=no_retry,
    )


@pytest.fixture
def payment_request() -> PaymentRequest:
    return PaymentRequest(
        amount=Decimal("19152"), gateway=PaymentGateway.PAYTM, method=PaymentMethod.UPI
    )


class TestPaymentSimulator:
    """Outcomes and payment record bookkeeping."""

    @pytest.mark.asyncio
    async def test_approved_payment(
        self, mock_db: MagicMock, no_retry: RetryPolicy, payment_request: PaymentRequest
    ) -> None:
        record_id = uuid4()
        mock_db.fetchval.return_value = record_id

        result = await build_simulator(mock_db, no_retry).authorize(payment_request)

        assert result.is_ok()
        payment = result.unwrap()
        assert payment.payment_id == "PAY_1751365800000"
        assert payment.transaction_id == "PAYTM_1751365800000"
        assert payment.amount == Decimal("19152")
        assert payment.method == PaymentMethod.UPI
        assert payment.payment_record_id == record_id

        settle_args = mock_db.execute.await_args.args
        assert settle_args[1:4] == (record_id, "success", "PAYTM_1751365800000")
        assert settle_args[4]["success"] is True

    @pytest.mark.asyncio
    async def test_declined_payment(
        self, mock_db: MagicMock, no_retry: RetryPolicy, payment_request: PaymentRequest
    ) -> None:
        mock_db.fetchval.return_value = uuid4()

        result = await build_simulator(mock_db, no_retry, success_rate=0.0).authorize(
            payment_request
        )

        assert isinstance(result, Err)
        assert result.err_value == DECLINED_MESSAGE
        settle_args = mock_db.execute.await_args.args
        assert settle_args[2] == "failed"
        assert settle_args[4]["error"] == DECLINED_MESSAGE

    @pytest.mark.asyncio
    async def test_timeout(
        self, mock_db: MagicMock, no_retry: RetryPolicy, payment_request: PaymentRequest
    ) -> None:
        mock_db.fetchval.return_value = uuid4()
        simulator = build_simulator(
            mock_db, no_retry, delay_seconds=5.0, timeout_seconds=0.01
        )

        result = await simulator.authorize(payment_request)

        assert isinstance(result, Err)
        assert result.err_value == "Payment timed out"
        assert mock_db.execute.await_args.args[4]["error"] == "Gateway timeout"

    @pytest.mark.asyncio
    async def test_record_insert_retried_then_fails(
        self, mock_db: MagicMock, no_retry: RetryPolicy, payment_request: PaymentRequest
    ) -> None:
        mock_db.fetchval = AsyncMock(side_effect=OSError("connection reset"))

        result = await build_simulator(mock_db, no_retry).authorize(payment_request)

        assert isinstance(result, Err)
        assert "connection reset" in result.err_value
        assert mock_db.fetchval.await_count == 3
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_seeded_outcomes_are_reproducible(
        self, mock_db: MagicMock, no_retry: RetryPolicy, payment_request: PaymentRequest
    ) -> None:
        mock_db.fetchval.return_value = uuid4()

        first = build_simulator(mock_db, no_retry, success_rate=0.5)
        second = build_simulator(mock_db, no_retry, success_rate=0.5)
        outcomes_first = [(await first.authorize(payment_request)).is_ok() for _ in range(5)]
        outcomes_second = [(await second.authorize(payment_request)).is_ok() for _ in range(5)]

        assert outcomes_first == outcomes_second

    @pytest.mark.asyncio
    async def test_settle_failure_does_not_change_outcome(
        self, mock_db: MagicMock, no_retry: RetryPolicy, payment_request: PaymentRequest
    ) -> None:
        mock_db.fetchval.return_value = uuid4()
        mock_db.execute.side_effect = RuntimeError("relation does not exist")

        result = await build_simulator(mock_db, no_retry).authorize(payment_request)

        assert result.is_ok()
