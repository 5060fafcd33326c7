# leadsheet/sheets/readers.py

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from .client import SheetsApi
from .columns import a1_range, column_range, letter_to_index
from .schema import FIRST_DATA_ROW, LEAD_FIELDS, ROW_LIMIT, Lead, fetch_last_column

logger = logging.getLogger(__name__)


def row_to_record(row: Sequence[Any], mapping: Mapping[str, str]) -> Lead:
    """Build a Lead from one sheet row. Short rows read as empty cells."""
    data: dict[str, Any] = {}
    for field_name, col in mapping.items():
        if field_name not in LEAD_FIELDS:
            continue
        i = letter_to_index(col)
        cell = row[i] if i < len(row) else ""
        data[field_name] = "" if cell is None else cell
    return Lead.from_fields(data)


def rows_to_records(rows: Sequence[Sequence[Any]], mapping: Mapping[str, str]) -> list[Lead]:
    return [row_to_record(r, mapping) for r in rows or []]


def leads_range(worksheet: str, mapping: Mapping[str, str]) -> str:
    return a1_range(worksheet, f"A{FIRST_DATA_ROW}:{fetch_last_column(mapping)}{ROW_LIMIT}")


def locate_row(column_values: Sequence[Any], trip_id: str) -> Optional[int]:
    """Sheet row number of the first exact match of `trip_id`, or None.

    `column_values` starts at the first data row, so index 0 is row 2.
    """
    target = str(trip_id)
    for i, value in enumerate(column_values or []):
        if str(value) == target:
            return i + FIRST_DATA_ROW
    return None


async def read_leads(
    api: SheetsApi,
    worksheet: str,
    mapping: Mapping[str, str],
    *,
    api_key: str = "",
    token: str = "",
) -> list[Lead]:
    data = await api.get_values(
        leads_range(worksheet, mapping),
        api_key=api_key,
        token=token,
        operation="fetch leads",
    )
    rows = data.get("values") or []
    return rows_to_records(rows, mapping)


async def find_row_by_key(
    api: SheetsApi,
    trip_id: str,
    worksheet: str,
    key_column: str,
    token: str,
) -> Optional[int]:
    """Scan the key column top-down for `trip_id`. None when it is absent."""
    data = await api.get_values(
        column_range(worksheet, key_column, FIRST_DATA_ROW, ROW_LIMIT),
        token=token,
        major_dimension="COLUMNS",
        operation="read trip ids",
    )
    columns = data.get("values") or []
    values = columns[0] if columns else []
    row_number = locate_row(values, trip_id)
    if row_number is None:
        logger.info("[Sheets] Trip ID %s not in %s (%d ids scanned)", trip_id, worksheet, len(values))
    return row_number
