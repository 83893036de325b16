# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Issue a policy from a paid purchase draft.

Writes happen in a fixed order with no compensation: policy number, policy
row, commission scheduling, status history, audit log, session completion.
Only the first two can fail the issuance; later failures are logged and the
earlier writes stay. When a quote session id is supplied it acts as an
idempotency key so a retried submit returns the already issued policy.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import UUID

import asyncpg
from beartype import beartype

from ..core.database import Database
from ..core.result_types import Err, Ok, Result
from ..models.commission import PolicyCommissionRequest, PolicyCommissionResult
from ..models.common import InitiatorRole
from ..models.policy import (
    PURCHASE_AUDIT_EVENT,
    AuditLogEntry,
    Policy,
    PolicyCreate,
    PolicyStatus,
    PolicyStatusHistoryEntry,
)
from ..models.purchase import PurchaseContext, PurchaseDraft
from .audit_trail import AuditTrail
from .performance_monitor import performance_monitor
from .quote_session_store import QuoteSessionStore

logger = logging.getLogger(__name__)

CommissionCall = Callable[
    [PolicyCommissionRequest], Awaitable[Result[PolicyCommissionResult, str]]
]


class PolicyNumberGenerator(Protocol):
    """Produces globally unique, human-readable policy numbers."""

    async def next_number(self) -> Result[str, str]:
        """Return the next policy number."""
        ...


class SequencePolicyNumberGenerator:
    """``POL-YYYY-NNNNNN`` numbers backed by ``policy_number_seq``."""

    def __init__(self, db: Database, clock: Callable[[], datetime] | None = None) -> None:
        self._db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @beartype
    async def next_number(self) -> Result[str, str]:
        """Draw the next sequence value."""
        try:
            sequence = await self._db.fetchval("SELECT nextval('policy_number_seq')")
        except Exception as e:
            return Err(f"Policy number sequence unavailable: {str(e)}")
        return Ok(f"POL-{self._clock().year}-{sequence:06d}")


class PolicyIssuer:
    """Persist policy, history and audit records, then trigger commission."""

    def __init__(
        self,
        db: Database,
        audit: AuditTrail,
        number_generator: PolicyNumberGenerator,
        *,
        commission: CommissionCall | None = None,
        session_store: QuoteSessionStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize issuer with its collaborators."""
        self._db = db
        self._audit = audit
        self._numbers = number_generator
        self._commission = commission
        self._sessions = session_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._pending: set[asyncio.Task[None]] = set()

    @beartype
    @performance_monitor("issue_policy", max_duration_ms=3000)
    async def issue(
        self,
        draft: PurchaseDraft,
        context: PurchaseContext,
        session_id: UUID | None = None,
    ) -> Result[Policy, str]:
        """Issue a policy for a paid draft."""
        missing = self._missing_for_issue(draft)
        if missing:
            return Err(f"Purchase is not ready for submission: missing {', '.join(missing)}")
        assert draft.selected_quote is not None  # nosec B101 - checked above
        if draft.selected_quote.total_premium <= 0:
            return Err("Purchase is not ready for submission: premium must be greater than zero")

        if session_id is not None:
            existing = await self._find_by_session(session_id)
            if isinstance(existing, Err):
                return existing
            policy = existing.unwrap()
            if policy is not None:
                logger.info(
                    "Session %s already issued policy %s", session_id, policy.policy_number
                )
                await self._complete_session(session_id, policy.id)
                return Ok(policy)

        number_result = await self._numbers.next_number()
        if isinstance(number_result, Err):
            logger.error("Policy number generation failed: %s", number_result.err_value)
            return Err(f"Failed to generate policy number: {number_result.err_value}")

        try:
            policy_create = self._build_policy(
                number_result.unwrap(), draft, context, session_id
            )
        except ValueError as e:
            return Err(f"Failed to create policy: {str(e)}")

        insert_result = await self._insert_policy(policy_create)
        if isinstance(insert_result, Err):
            logger.error("Policy insert failed: %s", insert_result.err_value)
            return insert_result
        policy = insert_result.unwrap()

        commission_triggered = self._schedule_commission(policy)

        now = self._clock()
        history = await self._audit.record_status_change(
            PolicyStatusHistoryEntry(
                policy_id=policy.id,
                previous_status=None,
                new_status=PolicyStatus.ISSUED,
                updated_by=context.initiated_by_id,
                changed_by_role=context.initiated_by_role,
                timestamp=now,
            )
        )
        if isinstance(history, Err):
            logger.warning("Status history for %s not written: %s", policy.id, history.err_value)

        audit = await self._audit.record_event(
            AuditLogEntry(
                event=PURCHASE_AUDIT_EVENT,
                entity_type="policy",
                entity_id=policy.id,
                policy_id=policy.id,
                metadata=self._purchase_metadata(draft, context, commission_triggered),
                timestamp=now,
            )
        )
        if isinstance(audit, Err):
            logger.warning("Audit log for %s not written: %s", policy.id, audit.err_value)

        if session_id is not None:
            await self._complete_session(session_id, policy.id)

        logger.info("Issued policy %s (%s)", policy.policy_number, policy.id)
        return Ok(policy)

    async def drain(self) -> None:
        """Wait for scheduled commission runs to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _complete_session(self, session_id: UUID, policy_id: UUID) -> None:
        if self._sessions is None:
            return
        completed = await self._sessions.complete(session_id, policy_id)
        if isinstance(completed, Err):
            logger.warning("Session %s not marked complete: %s", session_id, completed.err_value)

    def _missing_for_issue(self, draft: PurchaseDraft) -> list[str]:
        required = {
            "line_of_business": draft.line_of_business,
            "provider_id": draft.provider_id,
            "product_id": draft.product_id,
            "selected_quote": draft.selected_quote,
            "payment_result": draft.payment_result,
        }
        return [name for name, value in required.items() if value is None]

    def _build_policy(
        self,
        policy_number: str,
        draft: PurchaseDraft,
        context: PurchaseContext,
        session_id: UUID | None,
    ) -> PolicyCreate:
        assert draft.line_of_business is not None  # nosec B101 - checked by caller
        assert draft.selected_quote is not None  # nosec B101 - checked by caller

        party_ids: dict[str, str | None] = {
            "employee_id": None,
            "agent_id": None,
            "customer_id": None,
        }
        if context.initiated_by_role == InitiatorRole.EMPLOYEE:
            party_ids["employee_id"] = context.initiated_by_id
        elif context.initiated_by_role == InitiatorRole.AGENT:
            party_ids["agent_id"] = context.initiated_by_id
        elif context.initiated_by_role == InitiatorRole.CUSTOMER:
            party_ids["customer_id"] = context.initiated_by_id
        if draft.on_behalf_of is not None:
            party_ids[f"{draft.on_behalf_of.type.value}_id"] = draft.on_behalf_of.id

        return PolicyCreate(
            policy_number=policy_number,
            line_of_business=draft.line_of_business,
            insurer_id=draft.provider_id or "",
            product_id=draft.product_id or "",
            policy_status=PolicyStatus.ISSUED,
            initiated_by_role=context.initiated_by_role,
            initiated_by_id=context.initiated_by_id,
            premium_amount=draft.selected_quote.total_premium,
            quote_session_id=session_id,
            policy_data=draft.policy_data,
            **party_ids,
        )

    async def _insert_policy(self, policy: PolicyCreate) -> Result[Policy, str]:
        try:
            row = await self._db.fetchrow(
                """
                INSERT INTO policies (
                    policy_number, line_of_business, insurer_id, product_id,
                    policy_status, source, initiated_by_role, initiated_by_id,
                    premium_amount, employee_id, agent_id, customer_id,
                    quote_session_id, policy_data
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                RETURNING *
                """,
                policy.policy_number,
                policy.line_of_business.value,
                policy.insurer_id,
                policy.product_id,
                policy.policy_status.value,
                policy.source,
                policy.initiated_by_role.value,
                policy.initiated_by_id,
                policy.premium_amount,
                policy.employee_id,
                policy.agent_id,
                policy.customer_id,
                policy.quote_session_id,
                policy.model_dump(mode="json")["policy_data"],
            )
        except asyncpg.UniqueViolationError:
            if policy.quote_session_id is not None:
                existing = await self._find_by_session(policy.quote_session_id)
                if isinstance(existing, Ok) and existing.unwrap() is not None:
                    return Ok(existing.unwrap())
            return Err(f"Failed to create policy: {policy.policy_number} already exists")
        except Exception as e:
            return Err(f"Failed to create policy: {str(e)}")

        if not row:
            return Err("Failed to create policy")
        return Ok(self._row_to_policy(row))

    async def _find_by_session(self, session_id: UUID) -> Result[Policy | None, str]:
        try:
            row = await self._db.fetchrow(
                "SELECT * FROM policies WHERE quote_session_id = $1", session_id
            )
        except Exception as e:
            return Err(f"Database error: {str(e)}")
        return Ok(self._row_to_policy(row) if row else None)

    def _schedule_commission(self, policy: Policy) -> bool:
        if self._commission is None:
            return False
        if policy.premium_amount <= 0:
            logger.warning("No commission for %s: premium is not positive", policy.id)
            return False

        request = PolicyCommissionRequest(
            policy_id=policy.id,
            line_of_business=policy.line_of_business,
            insurer_id=policy.insurer_id,
            product_id=policy.product_id,
            premium_amount=policy.premium_amount,
            agent_id=policy.agent_id,
            employee_id=policy.employee_id,
            policy_type="New",
        )
        task = asyncio.create_task(self._run_commission(request))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _run_commission(self, request: PolicyCommissionRequest) -> None:
        assert self._commission is not None  # nosec B101 - only scheduled when set
        try:
            result = await self._commission(request)
        except Exception:
            logger.exception("Commission calculation crashed for %s", request.policy_id)
            return

        if isinstance(result, Err):
            logger.error(
                "Commission calculation error for %s: %s",
                request.policy_id,
                result.err_value,
            )
        else:
            logger.info(
                "Commission calculation triggered for %s: %s",
                request.policy_id,
                result.unwrap().calculation.total_commission,
            )

    def _purchase_metadata(
        self,
        draft: PurchaseDraft,
        context: PurchaseContext,
        commission_triggered: bool,
    ) -> dict[str, Any]:
        payment = draft.payment_result
        return {
            "initiated_by_role": context.initiated_by_role.value,
            "initiated_by_id": context.initiated_by_id,
            "source": "Online Purchase",
            "provider_name": draft.provider_name,
            "product_name": draft.product_name,
            "line_of_business": draft.line_of_business.value if draft.line_of_business else None,
            "payment_result": payment.model_dump(mode="json") if payment else None,
            "commission_triggered": commission_triggered,
            "final_premium": str(draft.selected_quote.total_premium)
            if draft.selected_quote
            else "0",
            "add_ons_selected": len(draft.selected_add_ons),
        }

    def _row_to_policy(self, row: Any) -> Policy:
        """Convert database row to Policy model."""
        data = dict(row)
        if isinstance(data.get("policy_data"), str):
            data["policy_data"] = json.loads(data["policy_data"])
        if data.get("policy_data") is None:
            data["policy_data"] = {}
        return Policy.model_validate(data)
