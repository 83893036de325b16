# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""FastAPI dependencies wiring services to the shared pool and cache.

Request-scoped services are cheap wrappers around the process-wide
``Database`` and ``Cache``. The policy issuer and the workflow registry
live for the whole process: the issuer holds background commission tasks
and workflows keep in-memory drafts between requests.
"""

from beartype import beartype
from fastapi import Depends

from ..core.cache import Cache, get_cache
from ..core.database import Database, get_database
from ..core.retry import RetryPolicy
from ..models.purchase import PurchaseContext
from ..services.addon_catalog import AddOnCatalog
from ..services.audit_trail import AuditTrail
from ..services.commission_engine import CommissionRuleEngine
from ..services.commission_rules import CommissionRuleService
from ..services.payment_simulator import PaymentSimulator
from ..services.policy_issuer import PolicyIssuer, SequencePolicyNumberGenerator
from ..services.premium_quote_engine import PremiumQuoteEngine
from ..services.purchase_workflow import PurchaseWorkflow, PurchaseWorkflowRegistry
from ..services.quote_session_store import QuoteSessionStore

_policy_issuer: PolicyIssuer | None = None
_workflow_registry: PurchaseWorkflowRegistry | None = None


@beartype
async def get_db() -> Database:
    """Provide the shared database pool wrapper."""
    return get_database()


@beartype
async def get_cache_client() -> Cache:
    """Provide the shared cache."""
    return get_cache()


@beartype
async def get_rule_service(db: Database = Depends(get_db)) -> CommissionRuleService:
    """Provide commission rule authoring service."""
    return CommissionRuleService(db)


@beartype
async def get_commission_engine(
    db: Database = Depends(get_db),
    rules: CommissionRuleService = Depends(get_rule_service),
) -> CommissionRuleEngine:
    """Provide commission rule engine."""
    return CommissionRuleEngine(
        db, rules, AuditTrail(db), retry_policy=RetryPolicy.from_settings()
    )


def build_commission_engine(db: Database) -> CommissionRuleEngine:
    """Commission engine outside of a request."""
    return CommissionRuleEngine(
        db,
        CommissionRuleService(db),
        AuditTrail(db),
        retry_policy=RetryPolicy.from_settings(),
    )


def get_policy_issuer() -> PolicyIssuer:
    """Process-wide policy issuer."""
    global _policy_issuer
    if _policy_issuer is None:
        db = get_database()
        _policy_issuer = PolicyIssuer(
            db,
            AuditTrail(db),
            SequencePolicyNumberGenerator(db),
            commission=build_commission_engine(db).calculate_for_policy,
            session_store=QuoteSessionStore(db, get_cache()),
        )
    return _policy_issuer


def build_workflow(context: PurchaseContext) -> PurchaseWorkflow:
    """Wire a workflow for ``context`` against the shared stores."""
    db = get_database()
    return PurchaseWorkflow(
        context,
        session_store=QuoteSessionStore(db, get_cache()),
        quote_engine=PremiumQuoteEngine(),
        add_on_catalog=AddOnCatalog(),
        payment_gateway=PaymentSimulator(db, retry_policy=RetryPolicy.from_settings()),
        issuer=get_policy_issuer(),
    )


def get_workflow_registry() -> PurchaseWorkflowRegistry:
    """Process-wide registry of in-progress purchase workflows."""
    global _workflow_registry
    if _workflow_registry is None:
        _workflow_registry = PurchaseWorkflowRegistry(build_workflow)
    return _workflow_registry


async def shutdown_services() -> None:
    """Let scheduled commission runs finish before the pool closes."""
    if _policy_issuer is not None:
        await _policy_issuer.drain()
