"""Tests for environment-driven settings."""

from flight_claims.config.settings import (
    get_batch_max_workers,
    get_filing_config,
    get_gateway_timeout,
    get_refund_config,
    get_store_timeout,
)


def test_filing_config_defaults(monkeypatch):
    for key in ("FILING_DEADLINE_HOURS", "DEFAULT_FOLLOW_UP_DAYS", "AUTO_FILING_METHODS"):
        monkeypatch.delenv(key, raising=False)
    config = get_filing_config()
    assert config["filing_deadline_hours"] == 48.0
    assert config["default_follow_up_days"] == 14
    assert config["auto_filing_methods"] == ("email",)


def test_auto_filing_methods_from_env(monkeypatch):
    monkeypatch.setenv("AUTO_FILING_METHODS", "Email, web_form")
    assert get_filing_config()["auto_filing_methods"] == ("email", "web_form")


def test_refund_config_defaults(monkeypatch):
    for key in (
        "REFUND_CUSTOMER_REQUEST_WINDOW_HOURS",
        "REFUND_DOCUMENT_GRACE_HOURS",
        "REFUND_NO_RESPONSE_DAYS",
    ):
        monkeypatch.delenv(key, raising=False)
    config = get_refund_config()
    assert config["customer_request_window_hours"] == 24.0
    assert config["document_grace_hours"] == 72.0
    assert config["no_response_days"] == 60


def test_malformed_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("REFUND_NO_RESPONSE_DAYS", "sixty")
    monkeypatch.setenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "soon")
    assert get_refund_config()["no_response_days"] == 60
    assert get_gateway_timeout() == 15.0


def test_timeouts_from_env(monkeypatch):
    monkeypatch.setenv("CLAIMS_STORE_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "3")
    assert get_store_timeout() == 2.5
    assert get_gateway_timeout() == 3.0


def test_batch_max_workers_at_least_one(monkeypatch):
    monkeypatch.setenv("BATCH_MAX_WORKERS", "0")
    assert get_batch_max_workers() == 1
    monkeypatch.setenv("BATCH_MAX_WORKERS", "8")
    assert get_batch_max_workers() == 8
