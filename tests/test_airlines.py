"""Tests for the airline configuration provider."""

import json
from decimal import Decimal

from flight_claims.config.airlines import (
    BUILTIN_AIRLINES,
    AirlineConfigProvider,
    load_airline_overrides,
)
from flight_claims.models.airline import SubmissionMethod


def test_builtin_table_covers_eu_carriers():
    assert set(BUILTIN_AIRLINES) == {"BA", "FR", "U2", "LH", "AF", "KL", "IB", "AZ", "SK", "TP"}
    for config in BUILTIN_AIRLINES.values():
        assert config.minimum_delay_hours == 3.0
        assert len(config.compensation_table) == 3


def test_lookup_by_code_name_and_alias(airlines):
    assert airlines.get_config("FR").airline_name == "Ryanair"
    assert airlines.get_config("fr").airline_code == "FR"
    assert airlines.get_config("ryanair").airline_code == "FR"
    assert airlines.get_config("Ryan Air").airline_code == "FR"
    assert airlines.get_config("  British Airways ").airline_code == "BA"


def test_unknown_airline_returns_none(airlines):
    assert airlines.get_config("Oceanic") is None
    assert airlines.get_config("") is None
    assert airlines.get_config(None) is None


def test_submission_methods(airlines):
    assert airlines.get_config("FR").submission_method == SubmissionMethod.EMAIL
    assert airlines.get_config("FR").claim_email == "eu261@ryanair.com"
    assert airlines.get_config("BA").submission_method == SubmissionMethod.WEB_FORM


def test_all_configs_sorted_by_code(airlines):
    codes = [c.airline_code for c in airlines.all_configs()]
    assert codes == sorted(codes)


def test_json_file_overrides_and_extends(tmp_path):
    path = tmp_path / "airlines.json"
    path.write_text(
        json.dumps(
            {
                "FR": {
                    "airline_code": "FR",
                    "airline_name": "Ryanair",
                    "submission_method": "web_form",
                    "minimum_delay_hours": 2.0,
                },
                "XQ": {
                    "airline_code": "XQ",
                    "airline_name": "Example Air",
                    "submission_method": "postal",
                    "compensation_table": [{"amount": "100.00"}],
                },
            }
        )
    )
    provider = AirlineConfigProvider(config_path=path)
    assert provider.get_config("FR").submission_method == SubmissionMethod.WEB_FORM
    assert provider.get_config("FR").minimum_delay_hours == 2.0
    assert provider.get_config("Example Air").compensation_table[0].amount == Decimal("100.00")
    assert provider.get_config("BA") is not None


def test_env_path_is_used(tmp_path, monkeypatch):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps([{"airline_code": "ZZ", "airline_name": "Zed", "submission_method": "email"}]))
    monkeypatch.setenv("AIRLINE_CONFIG_PATH", str(path))
    assert AirlineConfigProvider().get_config("ZZ").airline_name == "Zed"


def test_invalid_file_falls_back_to_builtins(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    assert load_airline_overrides(path) == {}
    assert AirlineConfigProvider(config_path=path).get_config("LH").airline_name == "Lufthansa"


def test_invalid_entries_are_skipped(tmp_path):
    path = tmp_path / "partial.json"
    path.write_text(json.dumps([{"airline_code": "QQ"}, {"airline_code": "ZZ", "airline_name": "Zed", "submission_method": "email"}]))
    assert set(load_airline_overrides(path)) == {"ZZ"}


def test_missing_file_is_empty(tmp_path):
    assert load_airline_overrides(tmp_path / "absent.json") == {}
