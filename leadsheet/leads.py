# leadsheet/leads.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

from leadsheet.sheets.client import SheetsApi, SheetsConfig, ServiceAccountTokenProvider
from leadsheet.sheets.columns import letter_to_index
from leadsheet.sheets.errors import ConfigurationMissingError, LeadNotFoundError
from leadsheet.sheets.readers import find_row_by_key, read_leads
from leadsheet.sheets.schema import TRIP_ID_FIELD, Lead, trip_id_column
from leadsheet.sheets.writers import (
    LeadLike,
    appended_range,
    record_to_cell_writes,
    record_to_row,
    updatable_fields,
)

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class AppendResult:
    trip_id: str
    updated_range: Optional[str] = None


@dataclass(frozen=True)
class UpdateResult:
    trip_id: str
    row_number: Optional[int] = None
    ranges: list[str] = field(default_factory=list)
    no_op: bool = False


class LeadSheet:
    """Lead table stored in one worksheet of a Google spreadsheet.

    Reads use the public API key; appends and updates mint a service-account
    token per call. Concurrent calls share one HTTP client and nothing else,
    so two updates to the same trip id race and the last write wins.
    """

    def __init__(
        self,
        config: SheetsConfig,
        *,
        http: Optional[httpx.AsyncClient] = None,
        token_provider: Optional[ServiceAccountTokenProvider] = None,
        reuse_tokens: bool = False,
    ) -> None:
        self.config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=HTTP_TIMEOUT_S)
        self._tokens = token_provider or ServiceAccountTokenProvider(
            config.service_account, reuse_tokens=reuse_tokens
        )
        self._api = SheetsApi(self._http, config.spreadsheet_id)

    async def __aenter__(self) -> "LeadSheet":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def worksheet(self) -> str:
        return self.config.worksheet

    @property
    def mapping(self) -> dict[str, str]:
        return self.config.column_mapping

    async def _token(self) -> str:
        if not self._tokens.configured:
            raise ConfigurationMissingError("Service Account JSON required.")
        return await self._tokens.access_token(self._http)

    async def fetch_leads(self) -> list[Lead]:
        api_key = self.config.api_key
        token = ""
        if not api_key:
            if not self._tokens.configured:
                raise ConfigurationMissingError("Google API key or service account required to read leads.")
            token = await self._token()

        leads = await read_leads(self._api, self.worksheet, self.mapping, api_key=api_key, token=token)
        logger.info("[Sheets] Fetched %d leads from %s", len(leads), self.worksheet)
        return leads

    async def append_lead(self, lead: LeadLike) -> AppendResult:
        if not self.mapping:
            raise ConfigurationMissingError("Column mapping is empty, nothing to append.")
        token = await self._token()
        row = record_to_row(lead, self.mapping)

        trip_id = ""
        if TRIP_ID_FIELD in self.mapping:
            trip_id = str(row[letter_to_index(self.mapping[TRIP_ID_FIELD])])

        response = await self._api.append_row(self.worksheet, row, token)
        result = AppendResult(trip_id=trip_id, updated_range=appended_range(response))
        logger.info("[Sheets] Appended lead %s (%s)", trip_id or "<no id column>", result.updated_range or "range unknown")
        return result

    async def update_lead(self, trip_id: str, updates: Mapping[str, Any]) -> UpdateResult:
        if not updatable_fields(updates, self.mapping):
            logger.warning("[Sheets] No valid fields to update for lead %s", trip_id)
            return UpdateResult(trip_id=trip_id, no_op=True)

        token = await self._token()
        row_number = await find_row_by_key(
            self._api, trip_id, self.worksheet, trip_id_column(self.mapping), token
        )
        if row_number is None:
            raise LeadNotFoundError(trip_id)

        writes = record_to_cell_writes(trip_id, updates, self.mapping, row_number, self.worksheet)
        if not writes:
            logger.warning("[Sheets] No valid fields to update for lead %s", trip_id)
            return UpdateResult(trip_id=trip_id, row_number=row_number, no_op=True)

        await self._api.batch_update([w.as_value_range() for w in writes], token)
        ranges = [w.range for w in writes]
        logger.info("[Sheets] Updated lead %s at row %d: %s", trip_id, row_number, ", ".join(ranges))
        return UpdateResult(trip_id=trip_id, row_number=row_number, ranges=ranges)
