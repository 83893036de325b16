# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Simulated payment gateway.

Each attempt writes a ``payment_records`` row as ``pending``, waits for the
configured processing delay and then settles it as ``success`` or
``failed`` at random.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import UUID

from beartype import beartype

from ..core.config import get_settings
from ..core.database import Database
from ..core.result_types import Err, Ok, Result
from ..core.retry import RetryPolicy, retry_result
from ..models.payment import PaymentRequest, PaymentResult, PaymentStatus
from .performance_monitor import performance_monitor

logger = logging.getLogger(__name__)

DECLINED_MESSAGE = "Payment declined by gateway"


class PaymentGatewayPort(Protocol):
    """Anything that can authorize a payment."""

    async def authorize(self, request: PaymentRequest) -> Result[PaymentResult, str]:
        """Authorize ``request``; Err carries a user-facing reason."""
        ...


class PaymentSimulator:
    """Random-outcome gateway with a fixed processing delay."""

    def __init__(
        self,
        db: Database,
        *,
        delay_seconds: float | None = None,
        success_rate: float | None = None,
        timeout_seconds: float | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize simulator; unset knobs come from settings."""
        settings = get_settings()
        self._db = db
        self._delay = (
            delay_seconds if delay_seconds is not None else settings.payment_delay_seconds
        )
        self._success_rate = (
            success_rate if success_rate is not None else settings.payment_success_rate
        )
        self._timeout = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.payment_timeout_seconds
        )
        self._rng = rng or random.Random()  # nosec B311 - simulation only
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._retry_policy = retry_policy

    @beartype
    @performance_monitor("authorize_payment", max_duration_ms=20000)
    async def authorize(self, request: PaymentRequest) -> Result[PaymentResult, str]:
        """Create a pending record, wait, then settle it."""
        record_result = await retry_result(
            lambda: self._create_record(request),
            policy=self._retry_policy,
            description="payment record insert",
        )
        if isinstance(record_result, Err):
            return record_result
        record_id = record_result.unwrap()

        try:
            async with asyncio.timeout(self._timeout):
                await asyncio.sleep(self._delay)
                approved = self._rng.random() < self._success_rate
        except TimeoutError:
            await self._settle(record_id, PaymentStatus.FAILED, None, request, "Gateway timeout")
            logger.warning("Payment %s timed out after %ss", record_id, self._timeout)
            return Err("Payment timed out")

        now = self._clock()
        stamp = int(now.timestamp() * 1000)

        if not approved:
            await self._settle(record_id, PaymentStatus.FAILED, None, request, DECLINED_MESSAGE)
            logger.info("Payment %s declined", record_id)
            return Err(DECLINED_MESSAGE)

        transaction_id = f"{request.gateway.value.upper()}_{stamp}"
        await self._settle(record_id, PaymentStatus.SUCCESS, transaction_id, request, None)
        logger.info("Payment %s authorized: %s", record_id, transaction_id)

        return Ok(
            PaymentResult(
                payment_id=f"PAY_{stamp}",
                transaction_id=transaction_id,
                method=request.method,
                amount=request.amount,
                timestamp=now,
                gateway=request.gateway,
                payment_record_id=record_id,
            )
        )

    async def _create_record(self, request: PaymentRequest) -> Result[UUID, str]:
        try:
            record_id = await self._db.fetchval(
                """
                INSERT INTO payment_records (amount, gateway, method, status)
                VALUES ($1, $2, $3, $4)
                RETURNING id
                """,
                request.amount,
                request.gateway.value,
                request.method.value,
                PaymentStatus.PENDING.value,
            )
        except Exception as e:
            return Err(f"Failed to create payment record: {str(e)}")

        if record_id is None:
            return Err("Failed to create payment record")
        return Ok(record_id)

    async def _settle(
        self,
        record_id: UUID,
        status: PaymentStatus,
        transaction_id: str | None,
        request: PaymentRequest,
        error: str | None,
    ) -> None:
        response: dict[str, Any] = {
            "gateway": request.gateway.value,
            "method": request.method.value,
            "success": status == PaymentStatus.SUCCESS,
        }
        if error:
            response["error"] = error

        try:
            await self._db.execute(
                """
                UPDATE payment_records
                SET status = $2, transaction_id = $3, gateway_response = $4,
                    updated_at = now()
                WHERE id = $1
                """,
                record_id,
                status.value,
                transaction_id,
                response,
            )
        except Exception:
            logger.exception("Failed to settle payment record %s", record_id)
