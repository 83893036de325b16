"""Unit tests for commission rule authoring."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from pydantic import ValidationError

from broker_core.core.result_types import Err
from broker_core.models.commission import (
    CommissionRuleCreate,
    CommissionRuleType,
    CommissionRuleUpdate,
    CommissionSlab,
    RuleStatus,
)
from broker_core.models.common import LineOfBusiness
from broker_core.services.commission_rules import CommissionRuleService
from tests.fixtures.test_data import make_cap, rule_row, scenario_b_slabs


@pytest.fixture
def service(mock_db: MagicMock, today: date) -> CommissionRuleService:
    return CommissionRuleService(mock_db, today=lambda: today)


def slab_rule_create() -> CommissionRuleCreate:
    return CommissionRuleCreate(
        rule_type=CommissionRuleType.SLAB,
        insurer_id="ins-1",
        line_of_business=LineOfBusiness.MOTOR,
        valid_from=date(2025, 1, 1),
        slabs=scenario_b_slabs(),
    )


def cap_row(percent: str = "12") -> dict[str, object]:
    return make_cap(percent).model_dump()


class TestRuleAuthoring:
    """Validation applied before anything is stored."""

    def test_overlapping_slabs_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            CommissionRuleCreate(
                rule_type=CommissionRuleType.SLAB,
                insurer_id="ins-1",
                line_of_business=LineOfBusiness.MOTOR,
                valid_from=date(2025, 1, 1),
                slabs=[
                    CommissionSlab(min_premium=Decimal("0"), max_premium=Decimal("50000"), rate=Decimal("10")),
                    CommissionSlab(min_premium=Decimal("50000"), rate=Decimal("15")),
                ],
            )

        assert "Slabs overlap" in str(exc_info.value)

    def test_inverted_slab_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CommissionSlab(min_premium=Decimal("100"), max_premium=Decimal("50"), rate=Decimal("5"))

    def test_flat_rule_requires_amount(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            CommissionRuleCreate(
                rule_type=CommissionRuleType.FLAT,
                insurer_id="ins-1",
                line_of_business=LineOfBusiness.MOTOR,
                valid_from=date(2025, 1, 1),
            )

        assert "flat_amount" in str(exc_info.value)

    def test_rate_above_hundred_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CommissionSlab(min_premium=Decimal("0"), rate=Decimal("101"))


class TestCommissionRuleService:
    """CRUD against a mocked database."""

    @pytest.mark.asyncio
    async def test_create_slab_rule(
        self, service: CommissionRuleService, mock_db: MagicMock, mock_conn: MagicMock
    ) -> None:
        rule_id = uuid4()
        mock_conn.fetchval.return_value = rule_id
        mock_db.fetch = AsyncMock(
            side_effect=[
                [rule_row(rule_id, rule_type="Slab", base_rate=None)],
                [
                    {"id": uuid4(), "rule_id": rule_id, "min_value": Decimal("0"), "max_value": Decimal("50000"), "rate": Decimal("10")},
                    {"id": uuid4(), "rule_id": rule_id, "min_value": Decimal("50001"), "max_value": None, "rate": Decimal("15")},
                ],
                [],
                [cap_row("12")],
            ]
        )

        result = await service.create_rule(slab_rule_create())

        assert result.is_ok()
        rule = result.unwrap()
        assert rule.id == rule_id
        assert [slab.rate for slab in rule.slabs] == [Decimal("10"), Decimal("15")]
        assert rule.final_effective_rate == Decimal("15")
        assert rule.irdai_cap == Decimal("12")
        assert rule.is_compliant is False

        slab_inserts = [
            call
            for call in mock_conn.execute.await_args_list
            if "INSERT INTO commission_slabs" in call.args[0]
        ]
        assert len(slab_inserts) == 2

    @pytest.mark.asyncio
    async def test_create_failure(
        self, service: CommissionRuleService, mock_conn: MagicMock
    ) -> None:
        mock_conn.fetchval.side_effect = RuntimeError("connection refused")

        result = await service.create_rule(slab_rule_create())

        assert isinstance(result, Err)
        assert result.err_value == "Failed to create commission rule: connection refused"

    @pytest.mark.asyncio
    async def test_get_missing_rule(self, service: CommissionRuleService) -> None:
        result = await service.get_rule(uuid4())

        assert result.is_ok()
        assert result.unwrap() is None

    @pytest.mark.asyncio
    async def test_list_filters_build_where_clause(
        self, service: CommissionRuleService, mock_db: MagicMock
    ) -> None:
        await service.list_rules(
            insurer_id="ins-1", line_of_business=LineOfBusiness.MOTOR, status=RuleStatus.ACTIVE
        )

        query, *params = mock_db.fetch.await_args.args
        assert "insurer_id = $1 AND line_of_business = $2 AND status = $3" in query
        assert params == ["ins-1", "Motor", "Active"]

    @pytest.mark.asyncio
    async def test_add_overlapping_slab_rejected(
        self, service: CommissionRuleService, mock_db: MagicMock
    ) -> None:
        rule_id = uuid4()
        mock_db.fetch = AsyncMock(
            side_effect=[
                [rule_row(rule_id, rule_type="Slab", base_rate=None)],
                [{"id": uuid4(), "rule_id": rule_id, "min_value": Decimal("0"), "max_value": Decimal("50000"), "rate": Decimal("10")}],
                [],
                [],
            ]
        )

        result = await service.add_slab(
            rule_id, CommissionSlab(min_premium=Decimal("40000"), rate=Decimal("12"))
        )

        assert isinstance(result, Err)
        assert "overlaps" in result.err_value
        mock_db.transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_slab_on_fixed_rule_rejected(
        self, service: CommissionRuleService, mock_db: MagicMock
    ) -> None:
        rule_id = uuid4()
        mock_db.fetch = AsyncMock(side_effect=[[rule_row(rule_id)], [], [], []])

        result = await service.add_slab(
            rule_id, CommissionSlab(min_premium=Decimal("0"), rate=Decimal("5"))
        )

        assert isinstance(result, Err)
        assert result.err_value == "Slabs can only be added to Slab rules"

    @pytest.mark.asyncio
    async def test_update_revalidates_merged_rule(
        self, service: CommissionRuleService, mock_db: MagicMock
    ) -> None:
        rule_id = uuid4()
        mock_db.fetch = AsyncMock(side_effect=[[rule_row(rule_id)], [], [], []])

        result = await service.update_rule(
            rule_id, CommissionRuleUpdate(valid_to=date(2024, 12, 31))
        )

        assert isinstance(result, Err)
        assert result.err_value.startswith("Invalid rule update")
        mock_db.transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_unknown_rule(self, service: CommissionRuleService) -> None:
        result = await service.update_rule(uuid4(), CommissionRuleUpdate(base_rate=Decimal("8")))

        assert isinstance(result, Err)
        assert result.err_value == "Commission rule not found"

    @pytest.mark.asyncio
    async def test_delete_unknown_rule(
        self, service: CommissionRuleService, mock_db: MagicMock
    ) -> None:
        mock_db.execute.return_value = "DELETE 0"

        result = await service.delete_rule(uuid4())

        assert isinstance(result, Err)
        assert result.err_value == "Commission rule not found"

    @pytest.mark.asyncio
    async def test_load_caps(self, service: CommissionRuleService, mock_db: MagicMock) -> None:
        mock_db.fetch.return_value = [cap_row("12")]

        result = await service.load_caps(LineOfBusiness.MOTOR)

        assert [cap.max_commission_percent for cap in result.unwrap()] == [Decimal("12")]
        assert mock_db.fetch.await_args.args[1] == "Motor"
