"""Tests for sanitization of operator-entered filing text."""

from flight_claims.utils.sanitization import (
    MAX_AIRLINE_REFERENCE,
    MAX_NOTES,
    sanitize_identifier,
    sanitize_notes,
    sanitize_text,
)


def test_sanitize_text_strips_control_chars_and_whitespace():
    assert sanitize_text("  ref\x00\x07-1  ", 50) == "ref-1"


def test_sanitize_text_keeps_newlines_and_tabs():
    assert sanitize_text("line one\nline\ttwo", 50) == "line one\nline\ttwo"


def test_sanitize_text_truncates():
    assert sanitize_text("a" * 300, 10) == "a" * 10


def test_sanitize_text_non_string_is_empty():
    assert sanitize_text(None, 10) == ""
    assert sanitize_text(12345, 10) == ""


def test_sanitize_identifier_collapses_whitespace():
    assert sanitize_identifier("FR \n  12345", MAX_AIRLINE_REFERENCE) == "FR 12345"


def test_sanitize_notes_returns_none_when_empty():
    assert sanitize_notes("   ") is None
    assert sanitize_notes(None) is None
    assert sanitize_notes("called airline") == "called airline"


def test_sanitize_notes_default_limit():
    assert len(sanitize_notes("x" * (MAX_NOTES + 50))) == MAX_NOTES
