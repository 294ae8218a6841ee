"""
Portable column types used by the ORM models.

PostgreSQL is the production backend; SQLite is used by the test suite. The
types below keep the stored semantics identical on both:

    - UTCDateTime: timezone-aware UTC timestamps with microsecond precision.
      SQLite has no timezone support, so values are stored naive in UTC and
      re-attached to UTC on load.
    - FixedDecimal: DECIMAL(19,4) fixed-point numbers. Values are quantized
      with ROUND_HALF_EVEN on write and always loaded as ``Decimal``. On
      SQLite they are stored as text so no float conversion ever happens.
    - JSONType: JSONB on PostgreSQL, JSON elsewhere.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine

from umami_common.time import ensure_utc

DECIMAL_PRECISION = 19
DECIMAL_SCALE = 4
DECIMAL_QUANTUM = Decimal(1).scaleb(-DECIMAL_SCALE)
MAX_INTEGER_DIGITS = DECIMAL_PRECISION - DECIMAL_SCALE

JSONType = JSON().with_variant(JSONB(), "postgresql")


def quantize_decimal(value: Any) -> Decimal:
    """
    Convert ``value`` to a DECIMAL(19,4) compatible ``Decimal``.

    Floats are converted through their shortest repr so ``10.005`` stays
    ``10.005`` instead of its binary approximation.

    Raises:
        ValueError: If the value is not finite or has more than 15 integer digits.
    """
    if isinstance(value, float):
        value = Decimal(repr(value))
    elif not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite():
        msg = f"Decimal value must be finite, got {value}"
        raise ValueError(msg)
    quantized = value.quantize(DECIMAL_QUANTUM, rounding=ROUND_HALF_EVEN)
    if quantized.adjusted() >= MAX_INTEGER_DIGITS:
        msg = f"Decimal value {value} exceeds {MAX_INTEGER_DIGITS} integer digits"
        raise ValueError(msg)
    return quantized


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp normalized to UTC on the way in and out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        value = ensure_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)


class FixedDecimal(TypeDecorator):
    """DECIMAL(19,4) that never passes through a float."""

    impl = Numeric(DECIMAL_PRECISION, DECIMAL_SCALE)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(DECIMAL_PRECISION + 2))
        return dialect.type_descriptor(
            Numeric(DECIMAL_PRECISION, DECIMAL_SCALE, asdecimal=True)
        )

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        quantized = quantize_decimal(value)
        if dialect.name == "sqlite":
            return str(quantized)
        return quantized

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return quantize_decimal(value)
