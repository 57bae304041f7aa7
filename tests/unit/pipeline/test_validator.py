"""Tests for envelope validation: the ledger is always complete."""

from types import SimpleNamespace

import pytest

from castor.pipeline.validator import validate_envelope
from castor.types import RawToolResult

pytestmark = pytest.mark.unit

_FIELDS = ["envelope", "name", "content", "content.length"]


def _failed(ledger):
    return [o.field for o in ledger if not o.valid]


def test_valid_envelope_passes_every_check():
    ledger = validate_envelope(RawToolResult(name="search", content='{"success":true}'))

    assert [o.field for o in ledger] == _FIELDS
    assert all(o.valid for o in ledger)
    assert ledger[2].value == "16 characters"


def test_null_envelope_still_produces_full_ledger():
    ledger = validate_envelope(None)

    assert [o.field for o in ledger] == _FIELDS
    assert _failed(ledger) == _FIELDS
    assert ledger[0].actual_kind == "null"
    assert ledger[1].actual_kind == "missing"


@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
def test_blank_content_fails_only_length_check(content):
    ledger = validate_envelope({"name": "x", "content": content})

    assert _failed(ledger) == ["content.length"]


def test_non_string_content_fails_both_content_checks():
    ledger = validate_envelope({"name": "x", "content": 42})

    assert _failed(ledger) == ["content", "content.length"]
    assert ledger[2].actual_kind == "int"
    assert "not a string" in ledger[3].message


@pytest.mark.parametrize("name", [None, "", 7])
def test_invalid_name_is_reported(name):
    ledger = validate_envelope({"name": name, "content": "{}"})

    assert _failed(ledger) == ["name"]
    assert ledger[1].expected_kind == "non-empty string"


def test_accepts_any_object_with_attributes():
    ledger = validate_envelope(SimpleNamespace(name="x", content="{}"))

    assert _failed(ledger) == []


def test_missing_fields_are_distinguished_from_null():
    ledger = validate_envelope({})

    assert ledger[1].actual_kind == "missing"
    assert ledger[2].actual_kind == "missing"
    assert validate_envelope({"name": None})[1].actual_kind == "null"
