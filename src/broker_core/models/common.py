# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Enumerations shared across the purchase and commission models."""

from enum import Enum


class LineOfBusiness(str, Enum):
    """Top-level insurance categories."""

    MOTOR = "Motor"
    HEALTH = "Health"
    LIFE = "Life"
    TRAVEL = "Travel"
    LOAN = "Loan"


class PaymentFrequency(str, Enum):
    """Premium payment frequencies."""

    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    YEARLY = "Yearly"


class InitiatorRole(str, Enum):
    """Roles allowed to initiate an online purchase."""

    ADMIN = "admin"
    EMPLOYEE = "employee"
    AGENT = "agent"
    CUSTOMER = "customer"


class PartyType(str, Enum):
    """Party a purchase may be made on behalf of."""

    EMPLOYEE = "employee"
    AGENT = "agent"
    CUSTOMER = "customer"
