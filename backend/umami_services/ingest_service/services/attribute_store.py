"""
Typed key/value attributes for events and sessions.

Attribute values are a tagged union: the ``data_type`` discriminant says which
one of ``string_value``, ``number_value`` or ``date_value`` is populated.
Arbitrary tracker payloads are classified into that union here, and every row
is validated against the union before it is written.

Data Types:
    - STRING (1): string_value
    - NUMBER (2): number_value, DECIMAL(19,4)
    - BOOLEAN (3): string_value, "true" or "false"
    - DATE (4): date_value, UTC
    - ARRAY (5): string_value, JSON text

Example:
    ```python
    pairs = flatten({"plan": "pro", "seats": 3, "meta": {"trial": True}})
    # [("plan", STRING "pro"), ("seats", NUMBER 3.0000), ("meta.trial", BOOLEAN "true")]
    ```
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import IntEnum
import json
from typing import Any
import uuid

from loguru import logger

from umami_common.database import quantize_decimal
from umami_common.exceptions import InvalidInput, TypeInvariantViolation
from umami_common.models import EventData, SessionData
from umami_common.security import TenantScope
from umami_common.time import ensure_utc

MAX_KEY_LENGTH = 500
MAX_STRING_LENGTH = 500
MAX_DISTINCT_ID_LENGTH = 50
MAX_DEPTH = 10


class DataType(IntEnum):
    STRING = 1
    NUMBER = 2
    BOOLEAN = 3
    DATE = 4
    ARRAY = 5


STRING_SLOT_TYPES = frozenset({DataType.STRING, DataType.BOOLEAN, DataType.ARRAY})


def truncate(value: str | None, limit: int, field: str) -> str | None:
    """Cut ``value`` to ``limit`` characters, logging when anything is dropped."""
    if value is None or len(value) <= limit:
        return value
    logger.debug(f"Truncated {field} from {len(value)} to {limit} characters")
    return value[:limit]


def _parse_iso_datetime(value: str) -> datetime | None:
    # Plain strings stay strings; only full ISO timestamps become dates
    if "T" not in value or len(value) < 16 or not value[:4].isdigit():
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class AttributeValue:
    """One value of the string | number | date tagged union."""

    data_type: DataType
    string_value: str | None = None
    number_value: Decimal | None = None
    date_value: datetime | None = None

    @classmethod
    def of(cls, value: Any, key: str = "value") -> AttributeValue:
        """
        Classify a Python value.

        Raises:
            InvalidInput: For non-finite or out-of-range numbers and for values
                that have no attribute representation.
        """
        if isinstance(value, bool):
            return cls(DataType.BOOLEAN, string_value="true" if value else "false")
        if isinstance(value, (int, float, Decimal)):
            try:
                number = quantize_decimal(value)
            except (ValueError, ArithmeticError) as e:
                msg = f"Attribute {key} is not a storable number: {e}"
                raise InvalidInput(msg, field=key) from e
            return cls(DataType.NUMBER, number_value=number)
        if isinstance(value, datetime):
            return cls(DataType.DATE, date_value=ensure_utc(value))
        if isinstance(value, date):
            return cls(DataType.DATE, date_value=datetime(value.year, value.month, value.day, tzinfo=UTC))
        if isinstance(value, (list, tuple)):
            text = json.dumps(list(value), default=str, separators=(",", ":"))
            return cls(DataType.ARRAY, string_value=truncate(text, MAX_STRING_LENGTH, key))
        if isinstance(value, uuid.UUID):
            value = str(value)
        if isinstance(value, str):
            parsed = _parse_iso_datetime(value)
            if parsed is not None:
                return cls(DataType.DATE, date_value=parsed)
            return cls(DataType.STRING, string_value=truncate(value, MAX_STRING_LENGTH, key))
        msg = f"Attribute {key} has unsupported type {type(value).__name__}"
        raise InvalidInput(msg, field=key)

    def validate(self) -> AttributeValue:
        """
        Check that exactly one slot is populated and that it is the slot of the type.

        Raises:
            TypeInvariantViolation: If the discriminant and the populated slot disagree.
        """
        populated = [
            name
            for name, slot in (
                ("string_value", self.string_value),
                ("number_value", self.number_value),
                ("date_value", self.date_value),
            )
            if slot is not None
        ]
        try:
            data_type = DataType(self.data_type)
        except ValueError as e:
            msg = f"Unknown attribute data_type {self.data_type}"
            raise TypeInvariantViolation(msg) from e

        if data_type in STRING_SLOT_TYPES:
            expected = "string_value"
        elif data_type is DataType.NUMBER:
            expected = "number_value"
        else:
            expected = "date_value"

        if populated != [expected]:
            msg = f"data_type {data_type.name} requires only {expected}, got {populated or 'no value'}"
            raise TypeInvariantViolation(msg)
        if data_type is DataType.BOOLEAN and self.string_value not in ("true", "false"):
            msg = f"Boolean attribute holds {self.string_value!r}"
            raise TypeInvariantViolation(msg)
        return self

    @property
    def value(self) -> Any:
        """The decoded Python value, for readers."""
        if self.data_type == DataType.NUMBER:
            return self.number_value
        if self.data_type == DataType.DATE:
            return self.date_value
        if self.data_type == DataType.BOOLEAN:
            return self.string_value == "true"
        if self.data_type == DataType.ARRAY:
            try:
                return json.loads(self.string_value)
            except (TypeError, ValueError):
                return self.string_value
        return self.string_value


def flatten(data: Mapping[str, Any] | None, prefix: str = "", depth: int = 0) -> list[tuple[str, AttributeValue]]:
    """
    Flatten a payload into ``(key, AttributeValue)`` pairs.

    Nested mappings become dotted keys. ``None`` values are skipped. Keys are
    truncated to 500 characters and are not deduplicated.
    """
    if not data:
        return []
    if depth > MAX_DEPTH:
        msg = f"Attribute data is nested deeper than {MAX_DEPTH} levels"
        raise InvalidInput(msg, field="data")

    pairs: list[tuple[str, AttributeValue]] = []
    for raw_key, value in data.items():
        key = f"{prefix}{raw_key}"
        if value is None:
            continue
        if isinstance(value, Mapping):
            pairs.extend(flatten(value, prefix=f"{key}.", depth=depth + 1))
            continue
        key = truncate(key, MAX_KEY_LENGTH, "data_key")
        pairs.append((key, AttributeValue.of(value, key)))
    return pairs


def build_event_data(
    scope: TenantScope,
    event_id: uuid.UUID,
    created_at: datetime,
    pairs: list[tuple[str, AttributeValue]],
) -> list[EventData]:
    rows = []
    for key, attribute in pairs:
        attribute.validate()
        rows.append(
            EventData(
                event_data_id=uuid.uuid4(),
                website_id=scope.website_id,
                website_event_id=event_id,
                data_key=key,
                string_value=attribute.string_value,
                number_value=attribute.number_value,
                date_value=attribute.date_value,
                data_type=int(attribute.data_type),
                created_at=created_at,
            )
        )
    return rows


def build_session_data(
    scope: TenantScope,
    session_id: uuid.UUID,
    created_at: datetime,
    pairs: list[tuple[str, AttributeValue]],
    distinct_id: str | None = None,
) -> list[SessionData]:
    distinct_id = truncate(distinct_id, MAX_DISTINCT_ID_LENGTH, "distinct_id")
    rows = []
    for key, attribute in pairs:
        attribute.validate()
        rows.append(
            SessionData(
                session_data_id=uuid.uuid4(),
                website_id=scope.website_id,
                session_id=session_id,
                data_key=key,
                string_value=attribute.string_value,
                number_value=attribute.number_value,
                date_value=attribute.date_value,
                data_type=int(attribute.data_type),
                distinct_id=distinct_id,
                created_at=created_at,
            )
        )
    return rows
