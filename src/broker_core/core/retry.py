# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Bounded retry with exponential backoff for remote calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from attrs import field, frozen
from beartype import beartype

from .config import get_settings
from .result_types import Err, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


@frozen
class RetryPolicy:
    """Immutable retry configuration."""

    max_attempts: int = field(default=3)
    base_delay_seconds: float = field(default=0.5)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        """Build the policy from application settings."""
        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based attempt."""
        return self.base_delay_seconds * (2**attempt)


@beartype
async def retry_result(
    operation: Callable[[], Awaitable[Result[T, str]]],
    *,
    policy: RetryPolicy | None = None,
    description: str = "operation",
) -> Result[T, str]:
    """Run ``operation`` until it returns Ok or attempts are exhausted.

    The last Err is returned unchanged when every attempt fails.
    """
    policy = policy or RetryPolicy.from_settings()
    result: Result[T, str] = Err(f"{description} was not attempted")

    for attempt in range(policy.max_attempts):
        result = await operation()
        if result.is_ok():
            return result

        if attempt < policy.max_attempts - 1:
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %s/%s): %s; retrying in %.2fs",
                description,
                attempt + 1,
                policy.max_attempts,
                result.err_value,
                delay,
            )
            await asyncio.sleep(delay)

    return result
