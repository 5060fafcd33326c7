from __future__ import annotations

import asyncio
import json
import re
from typing import Any
from urllib.parse import parse_qs, unquote

import httpx
import pytest

from leadsheet.leads import LeadSheet
from leadsheet.sheets.client import TOKEN_URI, SheetsConfig
from leadsheet.sheets.columns import letter_to_index


class FakeSheetsProvider:
    """In-memory stand-in for the values API of one worksheet.

    `rows` holds the whole sheet, header row included, as lists of strings.
    """

    def __init__(self, rows: list[list[Any]] | None = None, worksheet: str = "Sheet") -> None:
        self.worksheet = worksheet
        self.rows: list[list[Any]] = [list(r) for r in rows] if rows else [["header"]]
        self.requests: list[httpx.Request] = []
        self.batch_bodies: list[dict[str, Any]] = []
        self.appended: list[list[Any]] = []
        self.token_requests = 0
        self.fail: dict[str, tuple[int, Any]] = {}

    # Routing -----------------------------------------------------------
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url.startswith(TOKEN_URI):
            self.token_requests += 1
            return self._maybe_fail("token") or httpx.Response(
                200, json={"access_token": f"tok-{self.token_requests}", "expires_in": 3599}
            )

        path = unquote(request.url.raw_path.decode("ascii").split("?", 1)[0])
        query = parse_qs(request.url.query.decode("ascii"))

        if path.endswith("/values:batchUpdate"):
            return self._maybe_fail("batch") or self._batch_update(json.loads(request.content))
        if path.endswith(":append"):
            return self._maybe_fail("append") or self._append(json.loads(request.content))

        range_a1 = path.split("/values/", 1)[1]
        if query.get("majorDimension") == ["COLUMNS"]:
            return self._maybe_fail("lookup") or self._get_column(range_a1)
        return self._maybe_fail("get") or self._get_rows()

    def _maybe_fail(self, op: str) -> httpx.Response | None:
        if op not in self.fail:
            return None
        status, body = self.fail[op]
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    # Handlers ----------------------------------------------------------
    def _get_rows(self) -> httpx.Response:
        data = [list(r) for r in self.rows[1:]]
        while data and not any(data[-1]):
            data.pop()
        if not data:
            return httpx.Response(200, json={"range": self.worksheet})
        return httpx.Response(200, json={"range": self.worksheet, "values": data})

    def _get_column(self, range_a1: str) -> httpx.Response:
        m = re.search(r"!([A-Z]+)(\d+):", range_a1)
        col, first = letter_to_index(m.group(1)), int(m.group(2))
        values = [r[col] if col < len(r) else "" for r in self.rows[first - 1 :]]
        while values and values[-1] == "":
            values.pop()
        if not values:
            return httpx.Response(200, json={})
        return httpx.Response(200, json={"majorDimension": "COLUMNS", "values": [values]})

    def _append(self, body: dict[str, Any]) -> httpx.Response:
        row = body["values"][0]
        self.appended.append(row)
        self.rows.append(list(row))
        n = len(self.rows)
        return httpx.Response(200, json={"updates": {"updatedRange": f"{self.worksheet}!A{n}:P{n}"}})

    def _batch_update(self, body: dict[str, Any]) -> httpx.Response:
        self.batch_bodies.append(body)
        for entry in body["data"]:
            m = re.search(r"!([A-Z]+)(\d+)$", entry["range"])
            col, row_number = letter_to_index(m.group(1)), int(m.group(2))
            while len(self.rows) < row_number:
                self.rows.append([])
            row = self.rows[row_number - 1]
            while len(row) <= col:
                row.append("")
            row[col] = entry["values"][0][0]
        return httpx.Response(200, json={"totalUpdatedCells": len(body["data"])})


class FakeTokens:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.calls = 0

    async def access_token(self, http: httpx.AsyncClient) -> str:
        self.calls += 1
        return f"fake-token-{self.calls}"


@pytest.fixture
def provider() -> FakeSheetsProvider:
    return FakeSheetsProvider(
        [
            ["Trip ID", "Status", "Traveller"],
            ["T1", "Unfollowed", "Asha"],
            ["T2", "Hot Leads", "Ravi"],
            ["T3", "Negotiations", "Meera"],
        ]
    )


@pytest.fixture
def config() -> SheetsConfig:
    return SheetsConfig(
        spreadsheet_id="sheet123",
        worksheet_names=("Sheet",),
        column_mapping={"trip_id": "A", "status": "B", "traveller_name": "C"},
        service_account={"client_email": "bot@example.iam.gserviceaccount.com"},
        api_key="public-key",
    )


@pytest.fixture
def run_sheet():
    """Run `action(sheet)` against a fake provider and return its result."""

    def _run(config: SheetsConfig, provider: FakeSheetsProvider, action, tokens: FakeTokens | None = None):
        async def _go():
            transport = httpx.MockTransport(provider.handler)
            async with httpx.AsyncClient(transport=transport) as http:
                sheet = LeadSheet(config, http=http, token_provider=tokens or FakeTokens())
                return await action(sheet)

        return asyncio.run(_go())

    return _run
