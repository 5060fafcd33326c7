# leadsheet/sheets/errors.py

from __future__ import annotations

from typing import Any, Optional


PROTECTED_MARKER = "protected"


class LeadSheetError(RuntimeError):
    """Base error for the lead sheet access layer."""


class ConfigurationMissingError(LeadSheetError):
    """Credentials, signing material or sheet settings are not configured."""


class LeadNotFoundError(LeadSheetError):
    """No row holds the requested trip id."""

    def __init__(self, trip_id: str) -> None:
        super().__init__(f"Trip ID {trip_id} not found.")
        self.trip_id = trip_id


class SheetsRequestError(LeadSheetError):
    """An HTTP call to the Sheets or token endpoint failed.

    `payload` carries the provider's error body (parsed JSON when possible,
    raw text otherwise) so callers can classify the failure themselves.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code
        self.payload = payload


class TokenExchangeError(SheetsRequestError):
    """The token endpoint refused the signed assertion."""


class ProtectedRangeError(SheetsRequestError):
    """A write was rejected because the worksheet or range is protected."""


def classify_provider_error(message: str) -> str:
    """Return "protected" for protection rejections, "failure" otherwise.

    The provider exposes no structured code for this case, so the decision
    rests on the message text alone.
    """
    if PROTECTED_MARKER in (message or "").lower():
        return "protected"
    return "failure"


def provider_message(payload: Any, fallback: str = "") -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            desc = payload.get("error_description")
            return f"{error}: {desc}" if desc else error
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return fallback


def raise_for_provider_error(
    operation: str,
    status_code: int,
    payload: Any,
    text: str,
) -> None:
    """Raise the typed error for a rejected write, keeping the provider text verbatim."""
    message = provider_message(payload, fallback=text) or f"HTTP {status_code}"
    error_cls = SheetsRequestError
    if "protected" in (classify_provider_error(message), classify_provider_error(text)):
        error_cls = ProtectedRangeError
    raise error_cls(
        f"Failed to {operation}: {message}",
        operation=operation,
        status_code=status_code,
        payload=payload if payload is not None else text,
    )
