"""
Share normalization at the configuration boundary.

Partner and collaborator shares are stored with an explicit `ShareUnit`, so the
allocation calculator only ever receives fractions of the net amount.
"""

import math
from typing import Optional

from backend.app.core.exceptions import InvalidInputError
from backend.app.models.settlement_enums import ShareUnit

_UNIT_UPPER_BOUND = {
    ShareUnit.FRACTION: 1.0,
    ShareUnit.PERCENTAGE_POINTS: 100.0,
}


def normalize_share(value: Optional[float], unit: ShareUnit) -> float:
    """
    Convert a configured share to a fraction in [0, 1].

    Missing or non-positive values become 0 and are dropped by the calculator.

    Raises:
        InvalidInputError: If the value is not finite or exceeds its unit's range
            (e.g. 1.5 as a FRACTION, 150 as PERCENTAGE_POINTS)
    """
    if value is None or not value > 0:
        return 0.0

    if not math.isfinite(value):
        raise InvalidInputError("Share must be finite", {"share": str(value), "unit": unit.value})

    upper = _UNIT_UPPER_BOUND[unit]
    if value > upper:
        raise InvalidInputError(
            f"Share {value} exceeds the maximum of {upper:g} for unit {unit.value}",
            {"share": value, "unit": unit.value}
        )

    if unit == ShareUnit.PERCENTAGE_POINTS:
        return value / 100
    return float(value)
