"""Unit tests for retry, cache, configuration and money helpers."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from broker_core.core.cache import Cache
from broker_core.core.config import Settings, get_settings
from broker_core.core.money import round_currency, round_rate
from broker_core.core.result_types import Err, Ok, Result
from broker_core.core.retry import RetryPolicy, retry_result


class TestRetry:
    """Bounded retries of Result-returning operations."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, no_retry: RetryPolicy) -> None:
        outcomes: list[Result[int, str]] = [Err("timeout"), Err("timeout"), Ok(7)]

        async def operation() -> Result[int, str]:
            return outcomes.pop(0)

        result = await retry_result(operation, policy=no_retry)

        assert result.unwrap() == 7
        assert outcomes == []

    @pytest.mark.asyncio
    async def test_returns_last_error(self, no_retry: RetryPolicy) -> None:
        calls = 0

        async def operation() -> Result[int, str]:
            nonlocal calls
            calls += 1
            return Err(f"attempt {calls} failed")

        result = await retry_result(operation, policy=no_retry)

        assert isinstance(result, Err)
        assert result.err_value == "attempt 3 failed"

    def test_exponential_delay(self) -> None:
        policy = RetryPolicy(max_attempts=4, base_delay_seconds=0.5)

        assert [policy.delay_for(n) for n in range(3)] == [0.5, 1.0, 2.0]

    def test_policy_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")

        assert RetryPolicy.from_settings().max_attempts == 5


class TestCache:
    """Redis cache over fakeredis."""

    @pytest.mark.asyncio
    async def test_json_round_trip(self, fake_cache: Cache) -> None:
        await fake_cache.set("session:1", {"step": "Quote"})

        assert await fake_cache.get("session:1") == {"step": "Quote"}

    @pytest.mark.asyncio
    async def test_plain_string(self, fake_cache: Cache) -> None:
        await fake_cache.set("pointer", "a1b2-c3")

        assert await fake_cache.get("pointer") == "a1b2-c3"

    @pytest.mark.asyncio
    async def test_delete_and_exists(self, fake_cache: Cache) -> None:
        await fake_cache.set("pointer", "value", ttl=60)

        assert await fake_cache.exists("pointer")
        assert await fake_cache.delete("pointer")
        assert not await fake_cache.exists("pointer")
        assert await fake_cache.get("pointer") is None

    @pytest.mark.asyncio
    async def test_health_check(self, fake_cache: Cache) -> None:
        assert await fake_cache.health_check()
        assert not await Cache().health_check()

    @pytest.mark.asyncio
    async def test_unconnected_cache_raises(self) -> None:
        with pytest.raises(RuntimeError, match="Cache not connected"):
            await Cache().get("anything")


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self) -> None:
        settings = get_settings()

        assert settings.tax_rate == Decimal("0.18")
        assert settings.payment_success_rate == 0.9
        assert settings.is_development

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAYMENT_DELAY_SECONDS", "0")

        assert get_settings().payment_delay_seconds == 0.0

    def test_pool_bounds_validated(self) -> None:
        with pytest.raises(ValidationError):
            Settings(database_pool_min=10, database_pool_max=5)

    def test_invalid_cors_origin(self) -> None:
        with pytest.raises(ValidationError):
            Settings(api_cors_origins=["localhost:3000"])


class TestMoney:
    """Half-up rounding."""

    def test_round_currency(self) -> None:
        assert round_currency(Decimal("2462.5")) == Decimal("2463")
        assert round_currency(Decimal("2462.4")) == Decimal("2462")

    def test_round_rate(self) -> None:
        assert round_rate(Decimal("5.885")) == Decimal("5.89")
