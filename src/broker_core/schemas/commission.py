# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Request schemas for the commission API."""

from datetime import date

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field

from ..models.commission import CommissionRequest


@beartype
class ResolveCommissionRequest(BaseModel):
    """Commission request with an optional evaluation date."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    request: CommissionRequest
    as_of: date | None = Field(
        default=None, description="Evaluation date; today when omitted"
    )
