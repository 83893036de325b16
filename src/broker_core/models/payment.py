# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Payment models for the simulated gateway."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig


class PaymentGateway(str, Enum):
    """Supported (simulated) payment gateways."""

    RAZORPAY = "razorpay"
    PAYTM = "paytm"


class PaymentMethod(str, Enum):
    """Payment instruments offered at checkout."""

    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"


class PaymentStatus(str, Enum):
    """Outcome of a payment attempt, mirrored on the quote session."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@beartype
class PaymentRequest(BaseModelConfig):
    """Authorization request sent to the gateway."""

    amount: Decimal = Field(..., gt=Decimal("0"))
    gateway: PaymentGateway = PaymentGateway.RAZORPAY
    method: PaymentMethod = PaymentMethod.CARD


@beartype
class PaymentResult(BaseModelConfig):
    """Successful authorization details."""

    payment_id: str
    transaction_id: str
    method: PaymentMethod
    amount: Decimal
    timestamp: datetime
    gateway: PaymentGateway
    payment_record_id: UUID
