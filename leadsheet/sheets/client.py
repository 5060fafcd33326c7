# leadsheet/sheets/client.py

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

import httpx
from dotenv import load_dotenv
from google.auth import jwt as google_jwt
from google.oauth2 import service_account as google_service_account

from .columns import quote_worksheet
from .errors import (
    ConfigurationMissingError,
    SheetsRequestError,
    TokenExchangeError,
    provider_message,
    raise_for_provider_error,
)
from .schema import DEFAULT_COLUMN_MAPPING, LEAD_SHEET_NAME_DEFAULT, normalise_mapping

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_S = 3600
TOKEN_EXPIRY_MARGIN_S = 60
VALUE_INPUT_OPTION = "USER_ENTERED"

SERVICE_ACCOUNT_FIELDS = ("client_email", "private_key", "private_key_id")

_SHEET_ID_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
_BARE_ID_RE = re.compile(r"^[a-zA-Z0-9-_]+$")


@dataclass(frozen=True)
class SheetsConfig:
    spreadsheet_id: str
    worksheet_names: tuple[str, ...] = (LEAD_SHEET_NAME_DEFAULT,)
    column_mapping: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMN_MAPPING))
    service_account: Optional[dict[str, Any]] = field(default=None, repr=False)
    api_key: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "worksheet_names", tuple(self.worksheet_names))
        object.__setattr__(self, "column_mapping", normalise_mapping(self.column_mapping or {}))

    @property
    def worksheet(self) -> str:
        return self.worksheet_names[0] if self.worksheet_names else LEAD_SHEET_NAME_DEFAULT

    @property
    def has_signing_material(self) -> bool:
        return bool(self.service_account)


def extract_spreadsheet_id(url: str) -> str:
    """Pull the document id out of a full sheet URL. Bare ids pass through."""
    url = (url or "").strip()
    m = _SHEET_ID_RE.search(url)
    if m:
        return m.group(1)
    if _BARE_ID_RE.match(url):
        return url
    return ""


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def validate_service_account(payload: Mapping[str, Any]) -> dict[str, Any]:
    data = dict(payload)
    missing = [k for k in SERVICE_ACCOUNT_FIELDS if not isinstance(data.get(k), str) or not data[k].strip()]
    if missing:
        raise ConfigurationMissingError(f"Service account JSON missing fields: {', '.join(missing)}")
    data["private_key"] = _normalise_private_key(data["private_key"])
    return data


def _read_json_setting(name: str, raw: str) -> Any:
    """Setting value is inline JSON or a path to a JSON file."""
    text = raw.strip()
    if not text.startswith(("{", "[")):
        path = Path(text).expanduser()
        try:
            text = path.read_text(encoding="utf-8-sig")
        except OSError as e:
            raise ConfigurationMissingError(f"{name}: cannot read {path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationMissingError(f"{name}: invalid JSON ({e.msg})") from e


def load_sheets_config() -> SheetsConfig:
    load_dotenv()

    url = os.getenv("LEADSHEET_SPREADSHEET_URL", "").strip()
    worksheets_raw = os.getenv("LEADSHEET_WORKSHEETS", "").strip()
    mapping_raw = os.getenv("LEADSHEET_COLUMN_MAPPING", "").strip()
    sa_raw = os.getenv("LEADSHEET_SERVICE_ACCOUNT", "").strip()
    api_key = os.getenv("LEADSHEET_API_KEY", "").strip()

    if not url:
        raise ConfigurationMissingError("Missing env var: LEADSHEET_SPREADSHEET_URL")
    spreadsheet_id = extract_spreadsheet_id(url)
    if not spreadsheet_id:
        raise ConfigurationMissingError(f"Cannot find a spreadsheet id in {url!r}")

    worksheets = tuple(w.strip() for w in worksheets_raw.split(",") if w.strip())

    mapping = dict(DEFAULT_COLUMN_MAPPING)
    if mapping_raw:
        data = _read_json_setting("LEADSHEET_COLUMN_MAPPING", mapping_raw)
        if not isinstance(data, dict):
            raise ConfigurationMissingError("LEADSHEET_COLUMN_MAPPING must be a JSON object")
        try:
            mapping = normalise_mapping(data)
        except ValueError as e:
            raise ConfigurationMissingError(f"LEADSHEET_COLUMN_MAPPING: {e}") from e

    service_account = None
    if sa_raw:
        data = _read_json_setting("LEADSHEET_SERVICE_ACCOUNT", sa_raw)
        if not isinstance(data, dict):
            raise ConfigurationMissingError("LEADSHEET_SERVICE_ACCOUNT must be a JSON object")
        service_account = validate_service_account(data)

    return SheetsConfig(
        spreadsheet_id=spreadsheet_id,
        worksheet_names=worksheets or (LEAD_SHEET_NAME_DEFAULT,),
        column_mapping=mapping,
        service_account=service_account,
        api_key=api_key,
    )


class ServiceAccountTokenProvider:
    """Mints bearer tokens from a signed service-account assertion.

    A fresh token is minted for every call unless `reuse_tokens` is set, in
    which case a token is kept until TOKEN_EXPIRY_MARGIN_S before it expires.
    """

    def __init__(
        self,
        service_account: Optional[Mapping[str, Any]],
        *,
        reuse_tokens: bool = False,
        token_uri: str = TOKEN_URI,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._service_account = dict(service_account) if service_account else None
        self._reuse = reuse_tokens
        self._token_uri = token_uri
        self._clock = clock
        self._credentials: Optional[google_service_account.Credentials] = None
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._service_account)

    def _get_credentials(self) -> google_service_account.Credentials:
        # Only the signer and identity are used; refresh() would block on the requests transport.
        if self._credentials is None:
            info = {**self._service_account, "token_uri": self._service_account.get("token_uri") or self._token_uri}
            try:
                self._credentials = google_service_account.Credentials.from_service_account_info(
                    info, scopes=[SHEETS_SCOPE]
                )
            except (ValueError, KeyError) as e:
                raise ConfigurationMissingError(f"Invalid service account private key: {e}") from e
        return self._credentials

    def build_assertion(self, now: Optional[int] = None) -> tuple[str, int]:
        """Return (signed JWT, exp claim)."""
        if not self._service_account:
            raise ConfigurationMissingError("Service Account JSON required.")

        credentials = self._get_credentials()
        iat = int(self._clock()) if now is None else now
        exp = iat + TOKEN_LIFETIME_S
        claims = {
            "iss": credentials.service_account_email,
            "scope": SHEETS_SCOPE,
            "aud": self._token_uri,
            "exp": exp,
            "iat": iat,
        }
        assertion = google_jwt.encode(credentials.signer, claims)
        if isinstance(assertion, bytes):
            assertion = assertion.decode("ascii")
        return assertion, exp

    async def access_token(self, http: httpx.AsyncClient) -> str:
        if not self._service_account:
            raise ConfigurationMissingError("Service Account JSON required.")

        if not self._reuse:
            token, _ = await self._mint(http)
            return token

        async with self._lock:
            if self._token and self._clock() < self._expires_at - TOKEN_EXPIRY_MARGIN_S:
                return self._token
            self._token, self._expires_at = await self._mint(http)
            return self._token

    async def _mint(self, http: httpx.AsyncClient) -> tuple[str, float]:
        assertion, exp = self.build_assertion()
        try:
            resp = await http.post(
                self._token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(
                f"Failed to get access token: {e}", operation="get access token"
            ) from e

        payload = _json_or_none(resp)
        if not resp.is_success:
            message = provider_message(payload, fallback=resp.text)
            raise TokenExchangeError(
                f"Failed to get access token: {message or resp.status_code}",
                operation="get access token",
                status_code=resp.status_code,
                payload=payload if payload is not None else resp.text,
            )

        token = (payload or {}).get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise TokenExchangeError(
                "Failed to get access token: response had no access_token",
                operation="get access token",
                status_code=resp.status_code,
                payload=payload,
            )

        expires_at = float(exp)
        expires_in = payload.get("expires_in")
        if isinstance(expires_in, (int, float)):
            expires_at = min(expires_at, self._clock() + float(expires_in))
        logger.debug("[Sheets] Access token minted, expires at %s", int(expires_at))
        return token, expires_at


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class SheetsApi:
    """Raw calls against the values endpoints of one spreadsheet."""

    def __init__(self, http: httpx.AsyncClient, spreadsheet_id: str, *, base_url: str = SHEETS_API_BASE) -> None:
        self._http = http
        self._spreadsheet_id = spreadsheet_id
        self._base = f"{base_url.rstrip('/')}/{spreadsheet_id}"

    async def _send(self, operation: str, method: str, url: str, *, write: bool = False, **kwargs) -> dict:
        try:
            resp = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise SheetsRequestError(f"Failed to {operation}: {e}", operation=operation) from e

        payload = _json_or_none(resp)
        if not resp.is_success:
            if write:
                raise_for_provider_error(operation, resp.status_code, payload, resp.text)
            message = provider_message(payload, fallback=resp.text)
            raise SheetsRequestError(
                f"Failed to {operation}: {message or resp.status_code}",
                operation=operation,
                status_code=resp.status_code,
                payload=payload if payload is not None else resp.text,
            )
        return payload if isinstance(payload, dict) else {}

    async def get_values(
        self,
        range_a1: str,
        *,
        api_key: str = "",
        token: str = "",
        major_dimension: str = "",
        operation: str = "fetch values",
    ) -> dict:
        params: dict[str, str] = {}
        if api_key:
            params["key"] = api_key
        if major_dimension:
            params["majorDimension"] = major_dimension
        headers = _bearer(token) if token else {}
        url = f"{self._base}/values/{quote(range_a1, safe='')}"
        return await self._send(operation, "GET", url, params=params, headers=headers)

    async def append_row(self, worksheet: str, row: list[Any], token: str) -> dict:
        url = f"{self._base}/values/{quote(quote_worksheet(worksheet), safe='')}:append"
        return await self._send(
            "append lead",
            "POST",
            url,
            write=True,
            params={"valueInputOption": VALUE_INPUT_OPTION},
            headers=_bearer(token),
            json={"values": [row]},
        )

    async def batch_update(self, data: list[dict[str, Any]], token: str) -> dict:
        url = f"{self._base}/values:batchUpdate"
        return await self._send(
            "update lead",
            "POST",
            url,
            write=True,
            headers=_bearer(token),
            json={"valueInputOption": VALUE_INPUT_OPTION, "data": data},
        )
