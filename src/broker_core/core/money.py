# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Currency rounding shared by pricing and commission code."""

from decimal import ROUND_HALF_UP, Decimal

from beartype import beartype

WHOLE_UNIT = Decimal("1")
CENT = Decimal("0.01")


@beartype
def round_currency(value: Decimal) -> Decimal:
    """Round half-up to a whole currency unit."""
    return value.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


@beartype
def round_rate(value: Decimal) -> Decimal:
    """Round a percentage half-up to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
