# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Business logic service layer."""

from ..core.result_types import Err, Ok, Result
from .addon_catalog import AddOnCatalog
from .audit_trail import AuditTrail
from .commission_engine import CommissionRuleEngine
from .commission_rules import CommissionRuleService
from .payment_simulator import PaymentSimulator
from .policy_issuer import PolicyIssuer, SequencePolicyNumberGenerator
from .premium_quote_engine import PremiumQuoteEngine
from .purchase_workflow import PurchaseWorkflow, PurchaseWorkflowRegistry, WorkflowState
from .quote_session_store import QuoteSessionStore

__all__ = [
    "Result",
    "Ok",
    "Err",
    "AddOnCatalog",
    "AuditTrail",
    "CommissionRuleEngine",
    "CommissionRuleService",
    "PaymentSimulator",
    "PolicyIssuer",
    "SequencePolicyNumberGenerator",
    "PremiumQuoteEngine",
    "PurchaseWorkflow",
    "PurchaseWorkflowRegistry",
    "WorkflowState",
    "QuoteSessionStore",
]
