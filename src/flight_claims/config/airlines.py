"""Airline submission and compensation configuration.

- Built-in table of EU carriers with EU261 compensation bands.
- AIRLINE_CONFIG_PATH env or default data/airlines.json overrides/extends the
  built-ins (a JSON object keyed by IATA code, or a list of configs).
"""

import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from flight_claims.models.airline import AirlineConfig, CompensationBand, SubmissionMethod

logger = logging.getLogger(__name__)

# EU261: <=1500 km 250, <=3500 km 400, beyond 600 (halved when the delay is under 4h)
EU261_COMPENSATION = [
    CompensationBand(max_distance_km=1500, amount=Decimal("250.00")),
    CompensationBand(max_distance_km=3500, amount=Decimal("400.00")),
    CompensationBand(
        max_distance_km=None,
        amount=Decimal("600.00"),
        reduced_amount=Decimal("300.00"),
        full_amount_delay_hours=4.0,
    ),
]


def _eu_carrier(
    code: str,
    name: str,
    method: SubmissionMethod,
    follow_up_weeks: list[int],
    aliases: list[str],
    claim_email: str | None = None,
) -> AirlineConfig:
    return AirlineConfig(
        airline_code=code,
        airline_name=name,
        submission_method=method,
        claim_email=claim_email,
        minimum_delay_hours=3.0,
        required_documents=["boarding_pass", "delay_proof"],
        follow_up_schedule_weeks=follow_up_weeks,
        compensation_table=[band.model_copy() for band in EU261_COMPENSATION],
        aliases=aliases,
    )


BUILTIN_AIRLINES: dict[str, AirlineConfig] = {
    c.airline_code: c
    for c in (
        _eu_carrier("BA", "British Airways", SubmissionMethod.WEB_FORM, [2, 4, 8],
                    ["British Air", "BritishAirways", "BAW"]),
        _eu_carrier("FR", "Ryanair", SubmissionMethod.EMAIL, [3, 6, 10],
                    ["Ryan Air", "RYR"], claim_email="eu261@ryanair.com"),
        _eu_carrier("U2", "EasyJet", SubmissionMethod.WEB_FORM, [2, 4, 8],
                    ["Easy Jet", "EZY"]),
        _eu_carrier("LH", "Lufthansa", SubmissionMethod.EMAIL, [2, 4, 8],
                    ["Deutsche Lufthansa", "DLH"], claim_email="eu261@lufthansa.com"),
        _eu_carrier("AF", "Air France", SubmissionMethod.WEB_FORM, [3, 5, 8],
                    ["AirFrance", "AFR"]),
        _eu_carrier("KL", "KLM", SubmissionMethod.WEB_FORM, [2, 4, 8],
                    ["KLM Royal Dutch Airlines"]),
        _eu_carrier("IB", "Iberia", SubmissionMethod.EMAIL, [3, 6, 10],
                    ["Iberia Airlines", "IBE"], claim_email="eu261@iberia.com"),
        _eu_carrier("AZ", "Alitalia", SubmissionMethod.EMAIL, [4, 8, 12],
                    ["Alitalia Linee Aeree Italiane", "AZA"], claim_email="eu261@alitalia.com"),
        _eu_carrier("SK", "SAS Scandinavian", SubmissionMethod.WEB_FORM, [2, 4, 8],
                    ["Scandinavian Airlines", "SAS"]),
        _eu_carrier("TP", "TAP Air Portugal", SubmissionMethod.EMAIL, [3, 6, 10],
                    ["TAP Portugal", "TAP"], claim_email="eu261@tap.pt"),
    )
}


def _project_data_dir() -> Path:
    return Path(__file__).resolve().parent.parent.parent.parent / "data"


def _resolve_config_path() -> Path:
    path = os.environ.get("AIRLINE_CONFIG_PATH")
    if path:
        return Path(path)
    return _project_data_dir() / "airlines.json"


def load_airline_overrides(path: Path | None = None) -> dict[str, AirlineConfig]:
    """Load airline configs from JSON. Returns {} if the file is missing or invalid."""
    path = path or _resolve_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            raw: Any = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable airline config %s: %s", path, e)
        return {}
    if isinstance(raw, dict):
        entries = list(raw.values())
    elif isinstance(raw, list):
        entries = raw
    else:
        logger.warning("Ignoring airline config %s: expected object or list", path)
        return {}
    configs: dict[str, AirlineConfig] = {}
    for entry in entries:
        try:
            config = AirlineConfig.model_validate(entry)
        except PydanticValidationError as e:
            logger.warning("Skipping invalid airline config entry in %s: %s", path, e)
            continue
        configs[config.airline_code.upper()] = config
    return configs


class AirlineConfigProvider:
    """Read-only lookup of airline configuration by IATA code, name, or alias."""

    def __init__(
        self,
        configs: dict[str, AirlineConfig] | None = None,
        config_path: Path | None = None,
    ):
        if configs is None:
            configs = {**BUILTIN_AIRLINES, **load_airline_overrides(config_path)}
        self._by_code = {code.upper(): c for code, c in configs.items()}
        self._by_name: dict[str, AirlineConfig] = {}
        for config in self._by_code.values():
            for name in [config.airline_name, *config.aliases]:
                self._by_name.setdefault(name.strip().lower(), config)

    def get_config(self, airline: str | None) -> AirlineConfig | None:
        """Resolve an airline by code first, then by name or alias (case-insensitive)."""
        if not airline or not isinstance(airline, str):
            return None
        key = airline.strip()
        if not key:
            return None
        return self._by_code.get(key.upper()) or self._by_name.get(key.lower())

    def all_configs(self) -> list[AirlineConfig]:
        return sorted(self._by_code.values(), key=lambda c: c.airline_code)
