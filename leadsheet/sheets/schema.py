# leadsheet/sheets/schema.py

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping, Optional

from .columns import letter_to_index

logger = logging.getLogger(__name__)

LEAD_SHEET_NAME_DEFAULT = "MASTER DATA"

# Data rows live in 2..ROW_LIMIT; row 1 is the header row.
FIRST_DATA_ROW = 2
ROW_LIMIT = 10000
FETCH_LAST_COLUMN = "AZ"

TRIP_ID_FIELD = "trip_id"
TRIP_ID_COLUMN_DEFAULT = "A"

LEAD_STATUSES: tuple[str, ...] = (
    "Unfollowed",
    "Follow-up Calls",
    "Working on it",
    "Proposal 1 Shared",
    "Proposal 2 Shared",
    "Proposal 3 Shared",
    "Negotiations",
    "Hot Leads",
    "Booked With Us",
)

HOTEL_CATEGORIES: tuple[str, ...] = ("Basic", "3 Star", "3 Star Plus", "4 Star", "5 Star")

NEW_LEAD_DEFAULTS: dict[str, str] = {
    "status": "Unfollowed",
    "hotel_category": "3 Star",
    "meal_plan": "CP",
}


@dataclass
class Lead:
    trip_id: str = ""
    date: str = ""
    consultant: str = ""
    status: str = ""
    traveller_name: str = ""
    phone: str = ""
    email: str = ""
    travel_date: str = ""
    travel_state: str = ""
    remarks: str = ""
    nights: str = ""
    pax: str = ""
    hotel_category: str = ""
    meal_plan: str = ""
    priority: Optional[str] = None
    notes: Optional[str] = None

    def to_fields(self) -> dict[str, Any]:
        """Fields with a value; unset optional fields are left out."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_fields(cls, data: Mapping[str, Any]) -> "Lead":
        return cls(**{k: v for k, v in data.items() if k in LEAD_FIELDS})


LEAD_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(Lead))

# camelCase names used by existing credential stores.
FIELD_ALIASES: dict[str, str] = {
    "tripId": "trip_id",
    "travellerName": "traveller_name",
    "travelDate": "travel_date",
    "travelState": "travel_state",
    "hotelCategory": "hotel_category",
    "mealPlan": "meal_plan",
}

# Canonical layout used when no mapping is configured.
DEFAULT_COLUMN_MAPPING: dict[str, str] = {
    name: chr(ord("A") + i) for i, name in enumerate(LEAD_FIELDS)
}


def canonical_field(name: str) -> str:
    name = (name or "").strip()
    return FIELD_ALIASES.get(name, name)


def normalise_mapping(raw: Mapping[str, Any]) -> dict[str, str]:
    """Return an ordered field -> column mapping with validated letters.

    Unknown fields are dropped with a warning. Bad column letters raise ValueError.
    """
    out: dict[str, str] = {}
    for key, col in raw.items():
        field_name = canonical_field(str(key))
        if field_name not in LEAD_FIELDS:
            logger.warning("[Schema] Ignoring column mapping for unknown field %r", key)
            continue
        letters = str(col or "").strip().upper()
        letter_to_index(letters)
        out[field_name] = letters
    return out


def trip_id_column(mapping: Mapping[str, str]) -> str:
    return mapping.get(TRIP_ID_FIELD) or TRIP_ID_COLUMN_DEFAULT


def fetch_last_column(mapping: Mapping[str, str]) -> str:
    """AZ, or the right-most mapped column when the mapping goes past it."""
    last = FETCH_LAST_COLUMN
    for col in mapping.values():
        if letter_to_index(col) > letter_to_index(last):
            last = col
    return last
