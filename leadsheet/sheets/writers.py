# leadsheet/sheets/writers.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .columns import cell_range, letter_to_index
from .schema import LEAD_FIELDS, TRIP_ID_FIELD, Lead

logger = logging.getLogger(__name__)

LeadLike = Union[Lead, Mapping[str, Any]]


@dataclass(frozen=True)
class CellWrite:
    range: str
    value: Any

    def as_value_range(self) -> dict[str, Any]:
        return {"range": self.range, "values": [[self.value]]}


def new_trip_id() -> str:
    return f"T{int(time.time() * 1000)}"


def _fields_of(lead: LeadLike) -> dict[str, Any]:
    if isinstance(lead, Lead):
        return lead.to_fields()
    return dict(lead or {})


def record_to_row(lead: LeadLike, mapping: Mapping[str, str]) -> list[Any]:
    """Lay a (partial) lead out as one row, sized to the right-most mapped column.

    A missing trip id is replaced with a fresh T<ms timestamp> id.
    """
    values = _fields_of(lead)
    if not mapping:
        return []

    width = max(letter_to_index(col) for col in mapping.values()) + 1
    row: list[Any] = [""] * width

    for field_name, col in mapping.items():
        i = letter_to_index(col)
        if field_name == TRIP_ID_FIELD:
            row[i] = values.get(TRIP_ID_FIELD) or new_trip_id()
        elif values.get(field_name) is not None:
            row[i] = values[field_name]
    return row


def updatable_fields(updates: LeadLike, mapping: Mapping[str, str]) -> dict[str, Any]:
    """Fields of `updates` that have a value and a column; the trip id is the key, not a field to write."""
    out: dict[str, Any] = {}
    for field_name, value in _fields_of(updates).items():
        if field_name == TRIP_ID_FIELD or field_name not in LEAD_FIELDS:
            continue
        if value is None or field_name not in mapping:
            continue
        out[field_name] = value
    return out


def record_to_cell_writes(
    trip_id: str,
    updates: LeadLike,
    mapping: Mapping[str, str],
    row_number: int,
    worksheet: str,
) -> list[CellWrite]:
    writes = [
        CellWrite(cell_range(worksheet, mapping[field_name], row_number), value)
        for field_name, value in updatable_fields(updates, mapping).items()
    ]
    logger.debug("[Sheets] %d cell writes for %s at row %d", len(writes), trip_id, row_number)
    return writes


def appended_range(response: Mapping[str, Any]) -> Optional[str]:
    updates = response.get("updates") if response else None
    if isinstance(updates, dict):
        return updates.get("updatedRange")
    return None
