# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Timing decorator for service coroutines."""

import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from beartype import beartype

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


@beartype
def performance_monitor(
    operation_name: str,
    max_duration_ms: int = 2000,
    log_slow_operations: bool = True,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Log slow or failing runs of an async service operation.

    Args:
        operation_name: Name used in log records
        max_duration_ms: Threshold above which a run is logged as slow
        log_slow_operations: Whether to log slow runs at all
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.exception(
                    "%s failed after %.2fms", operation_name, duration_ms
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            if log_slow_operations and duration_ms > max_duration_ms:
                logger.warning(
                    "Slow operation %s: %.2fms > %sms threshold",
                    operation_name,
                    duration_ms,
                    max_duration_ms,
                )
            else:
                logger.debug("%s completed in %.2fms", operation_name, duration_ms)
            return result

        return wrapper

    return decorator
