import pytest

from leadsheet.sheets.errors import (
    LeadNotFoundError,
    LeadSheetError,
    ProtectedRangeError,
    SheetsRequestError,
    classify_provider_error,
    provider_message,
    raise_for_provider_error,
)


@pytest.mark.parametrize(
    "message, kind",
    [
        ("You are trying to edit a protected cell or object.", "protected"),
        ("PROTECTED RANGE", "protected"),
        ("Requested entity was not found.", "failure"),
        ("", "failure"),
        (None, "failure"),
    ],
)
def test_classify_provider_error(message, kind):
    assert classify_provider_error(message) == kind


def test_provider_message_shapes():
    assert provider_message({"error": {"code": 400, "message": "Bad range"}}) == "Bad range"
    assert provider_message({"error": "invalid_grant", "error_description": "Bad JWT"}) == "invalid_grant: Bad JWT"
    assert provider_message({"error": "invalid_grant"}) == "invalid_grant"
    assert provider_message(None, fallback="raw text") == "raw text"
    assert provider_message({}, fallback="") == ""


def test_raise_for_provider_error_protected_keeps_text():
    payload = {"error": {"message": "This range is protected."}}
    with pytest.raises(ProtectedRangeError) as excinfo:
        raise_for_provider_error("update lead", 400, payload, '{"error": ...}')
    err = excinfo.value
    assert str(err) == "Failed to update lead: This range is protected."
    assert err.status_code == 400
    assert err.operation == "update lead"
    assert err.payload is payload


def test_raise_for_provider_error_generic():
    with pytest.raises(SheetsRequestError) as excinfo:
        raise_for_provider_error("append lead", 502, None, "")
    assert not isinstance(excinfo.value, ProtectedRangeError)
    assert str(excinfo.value) == "Failed to append lead: HTTP 502"


def test_lead_not_found_message():
    err = LeadNotFoundError("T42")
    assert isinstance(err, LeadSheetError)
    assert str(err) == "Trip ID T42 not found."
    assert err.trip_id == "T42"
