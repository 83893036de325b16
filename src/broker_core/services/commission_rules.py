# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Commission rule authoring and loading.

Rules live in ``commission_rules`` with their slabs and business bonuses in
child tables. Compliance fields are never stored; they are computed against
the current IRDAI caps whenever rules are read.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import date
from typing import Any
from uuid import UUID

import asyncpg
from beartype import beartype
from pydantic import ValidationError

from ..core.database import Database
from ..core.result_types import Err, Ok, Result
from ..models.commission import (
    BusinessBonus,
    Campaign,
    CommissionRequest,
    CommissionRule,
    CommissionRuleCreate,
    CommissionRuleType,
    CommissionRuleUpdate,
    CommissionSlab,
    IrdaiCap,
    RuleStatus,
)
from ..models.common import LineOfBusiness
from .commission_engine import with_compliance
from .performance_monitor import performance_monitor

logger = logging.getLogger(__name__)

_RULE_COLUMNS = (
    "rule_type, insurer_id, product_id, line_of_business, channel, policy_year, "
    "valid_from, valid_to, base_rate, flat_amount, unit_type, campaign_name, "
    "campaign_rate, campaign_valid_from, campaign_valid_to, status"
)


class CommissionRuleService:
    """CRUD for commission rules, slabs and IRDAI caps."""

    def __init__(self, db: Database, today: Callable[[], date] | None = None) -> None:
        """Initialize service with database."""
        self._db = db
        self._today = today or date.today

    @beartype
    @performance_monitor("create_commission_rule")
    async def create_rule(self, data: CommissionRuleCreate) -> Result[CommissionRule, str]:
        """Create a rule with its slabs and bonuses."""
        try:
            async with self._db.transaction() as conn:
                rule_id = await conn.fetchval(
                    f"""
                    INSERT INTO commission_rules ({_RULE_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12,
                            $13, $14, $15, $16)
                    RETURNING id
                    """,  # nosec B608 - fixed column list
                    *self._rule_params(data),
                )
                for slab in data.slabs:
                    await self._insert_slab(conn, rule_id, slab)
                for bonus in data.business_bonuses:
                    await self._insert_bonus(conn, rule_id, bonus)
        except Exception as e:
            return Err(f"Failed to create commission rule: {str(e)}")

        logger.info("Created %s commission rule %s", data.rule_type.value, rule_id)
        return await self._require_rule(rule_id)

    @beartype
    @performance_monitor("get_commission_rule")
    async def get_rule(self, rule_id: UUID) -> Result[CommissionRule | None, str]:
        """Get rule by ID with compliance fields."""
        rules_result = await self._fetch_rules("WHERE id = $1", [rule_id])
        if isinstance(rules_result, Err):
            return rules_result
        rules = rules_result.unwrap()
        return Ok(rules[0] if rules else None)

    @beartype
    @performance_monitor("list_commission_rules")
    async def list_rules(
        self,
        *,
        insurer_id: str | None = None,
        line_of_business: LineOfBusiness | None = None,
        status: RuleStatus | None = None,
        rule_type: CommissionRuleType | None = None,
    ) -> Result[list[CommissionRule], str]:
        """List rules, newest first, with optional filters."""
        conditions: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("insurer_id", insurer_id),
            ("line_of_business", line_of_business.value if line_of_business else None),
            ("status", status.value if status else None),
            ("rule_type", rule_type.value if rule_type else None),
        ):
            if value is not None:
                params.append(value)
                conditions.append(f"{column} = ${len(params)}")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return await self._fetch_rules(where, params)

    @beartype
    @performance_monitor("update_commission_rule")
    async def update_rule(
        self, rule_id: UUID, update: CommissionRuleUpdate
    ) -> Result[CommissionRule, str]:
        """Apply a partial update, re-validating the merged rule."""
        current_result = await self._require_rule(rule_id)
        if isinstance(current_result, Err):
            return current_result
        current = current_result.unwrap()

        changes = update.model_dump(exclude_unset=True)
        try:
            merged = CommissionRuleCreate.model_validate(
                {
                    **current.model_dump(
                        include=set(CommissionRuleCreate.model_fields),
                    ),
                    **changes,
                }
            )
        except ValidationError as e:
            return Err(f"Invalid rule update: {e.errors()[0]['msg']}")

        try:
            async with self._db.transaction() as conn:
                await conn.execute(
                    f"""
                    UPDATE commission_rules
                    SET ({_RULE_COLUMNS}) = ($2, $3, $4, $5, $6, $7, $8, $9, $10,
                                             $11, $12, $13, $14, $15, $16, $17),
                        updated_at = now()
                    WHERE id = $1
                    """,  # nosec B608 - fixed column list
                    rule_id,
                    *self._rule_params(merged),
                )
                if "business_bonuses" in changes:
                    await conn.execute(
                        "DELETE FROM commission_business_bonus WHERE rule_id = $1",
                        rule_id,
                    )
                    for bonus in merged.business_bonuses:
                        await self._insert_bonus(conn, rule_id, bonus)
        except Exception as e:
            return Err(f"Failed to update commission rule: {str(e)}")

        return await self._require_rule(rule_id)

    @beartype
    @performance_monitor("delete_commission_rule")
    async def delete_rule(self, rule_id: UUID) -> Result[None, str]:
        """Delete a rule; slabs and bonuses cascade."""
        try:
            status = await self._db.execute(
                "DELETE FROM commission_rules WHERE id = $1", rule_id
            )
        except Exception as e:
            return Err(f"Failed to delete commission rule: {str(e)}")

        if status == "DELETE 0":
            return Err("Commission rule not found")
        return Ok(None)

    @beartype
    @performance_monitor("add_commission_slab")
    async def add_slab(self, rule_id: UUID, slab: CommissionSlab) -> Result[CommissionRule, str]:
        """Add a slab, rejecting it if it overlaps an existing one."""
        current_result = await self._require_rule(rule_id)
        if isinstance(current_result, Err):
            return current_result
        current = current_result.unwrap()

        if current.rule_type != CommissionRuleType.SLAB:
            return Err("Slabs can only be added to Slab rules")

        for existing in current.slabs:
            if existing.overlaps(slab):
                return Err(
                    f"Slab [{slab.min_premium}, {slab.max_premium}] overlaps "
                    f"[{existing.min_premium}, {existing.max_premium}]"
                )

        try:
            async with self._db.transaction() as conn:
                await self._insert_slab(conn, rule_id, slab)
        except Exception as e:
            return Err(f"Failed to add slab: {str(e)}")

        return await self._require_rule(rule_id)

    @beartype
    @performance_monitor("remove_commission_slab")
    async def remove_slab(self, rule_id: UUID, slab_id: UUID) -> Result[CommissionRule, str]:
        """Remove one slab from a rule."""
        try:
            status = await self._db.execute(
                "DELETE FROM commission_slabs WHERE id = $1 AND rule_id = $2",
                slab_id,
                rule_id,
            )
        except Exception as e:
            return Err(f"Failed to remove slab: {str(e)}")

        if status == "DELETE 0":
            return Err("Slab not found")
        return await self._require_rule(rule_id)

    @beartype
    async def add_cap(self, cap: IrdaiCap) -> Result[IrdaiCap, str]:
        """Store a regulatory cap."""
        try:
            await self._db.execute(
                """
                INSERT INTO irdai_commission_caps (
                    line_of_business, policy_year, channel,
                    max_commission_percent, effective_from, effective_to
                ) VALUES ($1, $2, $3, $4, $5, $6)
                """,
                cap.line_of_business.value,
                cap.policy_year,
                cap.channel,
                cap.max_commission_percent,
                cap.effective_from,
                cap.effective_to,
            )
        except Exception as e:
            return Err(f"Failed to store IRDAI cap: {str(e)}")
        return Ok(cap)

    @beartype
    async def load_caps(self, line_of_business: LineOfBusiness) -> Result[list[IrdaiCap], str]:
        """All caps for a line of business."""
        try:
            rows = await self._db.fetch(
                """
                SELECT line_of_business, policy_year, channel,
                       max_commission_percent, effective_from, effective_to
                FROM irdai_commission_caps
                WHERE line_of_business = $1
                """,
                line_of_business.value,
            )
        except Exception as e:
            return Err(f"Database error: {str(e)}")
        return Ok([IrdaiCap.model_validate(dict(row)) for row in rows])

    @beartype
    async def load_candidate_rules(
        self, request: CommissionRequest
    ) -> Result[list[CommissionRule], str]:
        """Active rules for the request's insurer, line and policy year."""
        return await self._fetch_rules(
            """
            WHERE insurer_id = $1 AND line_of_business = $2
              AND policy_year = $3 AND status = $4
            """,
            [
                request.insurer_id,
                request.line_of_business.value,
                request.policy_year,
                RuleStatus.ACTIVE.value,
            ],
        )

    async def _require_rule(self, rule_id: UUID) -> Result[CommissionRule, str]:
        result = await self.get_rule(rule_id)
        if isinstance(result, Err):
            return result
        rule = result.unwrap()
        if rule is None:
            return Err("Commission rule not found")
        return Ok(rule)

    async def _fetch_rules(
        self, where: str, params: list[Any]
    ) -> Result[list[CommissionRule], str]:
        try:
            rows = await self._db.fetch(
                f"SELECT * FROM commission_rules {where} ORDER BY created_at DESC",  # nosec B608
                *params,
            )
            if not rows:
                return Ok([])

            rule_ids = [row["id"] for row in rows]
            slab_rows = await self._db.fetch(
                """
                SELECT id, rule_id, min_value, max_value, rate
                FROM commission_slabs WHERE rule_id = ANY($1::uuid[])
                ORDER BY min_value
                """,
                rule_ids,
            )
            bonus_rows = await self._db.fetch(
                """
                SELECT rule_id, min_gwp, max_gwp, bonus_rate
                FROM commission_business_bonus WHERE rule_id = ANY($1::uuid[])
                ORDER BY min_gwp
                """,
                rule_ids,
            )
        except Exception as e:
            return Err(f"Database error: {str(e)}")

        slabs: dict[UUID, list[CommissionSlab]] = defaultdict(list)
        for row in slab_rows:
            slabs[row["rule_id"]].append(
                CommissionSlab(
                    id=row["id"],
                    min_premium=row["min_value"],
                    max_premium=row["max_value"],
                    rate=row["rate"],
                )
            )
        bonuses: dict[UUID, list[BusinessBonus]] = defaultdict(list)
        for row in bonus_rows:
            bonuses[row["rule_id"]].append(
                BusinessBonus(
                    min_gwp=row["min_gwp"],
                    max_gwp=row["max_gwp"],
                    bonus_rate=row["bonus_rate"],
                )
            )

        caps_by_lob: dict[str, list[IrdaiCap]] = {}
        rules = []
        for row in rows:
            rule = self._row_to_rule(row, slabs[row["id"]], bonuses[row["id"]])
            lob = rule.line_of_business
            if lob.value not in caps_by_lob:
                caps_result = await self.load_caps(lob)
                if isinstance(caps_result, Err):
                    return caps_result
                caps_by_lob[lob.value] = caps_result.unwrap()
            rules.append(with_compliance(rule, caps_by_lob[lob.value], self._today()))
        return Ok(rules)

    def _row_to_rule(
        self,
        row: Any,
        slabs: list[CommissionSlab],
        bonuses: list[BusinessBonus],
    ) -> CommissionRule:
        """Convert database row plus child rows to a CommissionRule."""
        campaign = None
        if row["campaign_name"]:
            campaign = Campaign(
                name=row["campaign_name"],
                rate=row["campaign_rate"],
                valid_from=row["campaign_valid_from"],
                valid_to=row["campaign_valid_to"],
            )

        return CommissionRule(
            id=row["id"],
            rule_type=CommissionRuleType(row["rule_type"]),
            insurer_id=row["insurer_id"],
            product_id=row["product_id"],
            line_of_business=LineOfBusiness(row["line_of_business"]),
            channel=row["channel"],
            policy_year=row["policy_year"],
            valid_from=row["valid_from"],
            valid_to=row["valid_to"],
            base_rate=row["base_rate"],
            flat_amount=row["flat_amount"],
            unit_type=row["unit_type"],
            campaign=campaign,
            slabs=slabs,
            business_bonuses=bonuses,
            status=RuleStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _rule_params(self, data: CommissionRuleCreate) -> list[Any]:
        campaign = data.campaign
        return [
            data.rule_type.value,
            data.insurer_id,
            data.product_id,
            data.line_of_business.value,
            data.channel,
            data.policy_year,
            data.valid_from,
            data.valid_to,
            data.base_rate,
            data.flat_amount,
            data.unit_type.value if data.unit_type else None,
            campaign.name if campaign else None,
            campaign.rate if campaign else None,
            campaign.valid_from if campaign else None,
            campaign.valid_to if campaign else None,
            data.status.value,
        ]

    async def _insert_slab(
        self, conn: asyncpg.Connection, rule_id: UUID, slab: CommissionSlab
    ) -> None:
        await conn.execute(
            """
            INSERT INTO commission_slabs (rule_id, min_value, max_value, rate, slab_type)
            VALUES ($1, $2, $3, $4, 'Premium')
            """,
            rule_id,
            slab.min_premium,
            slab.max_premium,
            slab.rate,
        )

    async def _insert_bonus(
        self, conn: asyncpg.Connection, rule_id: UUID, bonus: BusinessBonus
    ) -> None:
        await conn.execute(
            """
            INSERT INTO commission_business_bonus (rule_id, min_gwp, max_gwp, bonus_rate)
            VALUES ($1, $2, $3, $4)
            """,
            rule_id,
            bonus.min_gwp,
            bonus.max_gwp,
            bonus.bonus_rate,
        )
