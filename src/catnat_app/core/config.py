"""Configuration loader for pricing, validation and import queue settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from catnat_app.models.pricing import PricingConfig
from catnat_app.models.policy import CoverageType


@dataclass(frozen=True)
class PricingSettings:
    valuation_multiplier: Decimal
    default_coverage_type: CoverageType
    rates: tuple[PricingConfig, ...]


@dataclass(frozen=True)
class ValidationSettings:
    min_square_meters: Decimal
    max_square_meters: Decimal
    allowed_extensions: tuple[str, ...]
    max_upload_bytes: int


@dataclass(frozen=True)
class ImportQueueSettings:
    authorized_roles: tuple[str, ...]
    max_jobs_per_session: int
    job_retention_hours: int
    content_clear_delay_seconds: float


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    audit_retention_days: int


@dataclass(frozen=True)
class AppConfig:
    pricing: PricingSettings
    validation: ValidationSettings
    import_queue: ImportQueueSettings
    logging: LoggingConfig = field(
        default_factory=lambda: LoggingConfig(level="INFO", audit_retention_days=1095)
    )


DEFAULT_CONFIG_REL_PATH = Path("config/settings.yaml")
CONFIG_PATH_ENV = "CATNAT_CONFIG_PATH"

DEFAULT_RATES: list[dict[str, Any]] = [
    {
        "coverage_type": "catnat",
        "rate_per_square_meter": "2.5",
        "minimum_premium": "500",
        "maximum_insured_sum": "10000000",
        "effective_from": "2024-01-01",
        "effective_to": None,
    },
    {
        "coverage_type": "property",
        "rate_per_square_meter": "4.0",
        "minimum_premium": "750",
        "maximum_insured_sum": "15000000",
        "effective_from": "2024-01-01",
        "effective_to": None,
    },
    {
        "coverage_type": "combined",
        "rate_per_square_meter": "5.5",
        "minimum_premium": "1000",
        "maximum_insured_sum": "20000000",
        "effective_from": "2024-01-01",
        "effective_to": None,
    },
]


def _to_date(value: Any) -> date | None:
    """Accept YAML dates or ISO strings."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _parse_rate(raw: dict[str, Any]) -> PricingConfig:
    effective_from = _to_date(raw["effective_from"])
    if effective_from is None:
        raise ValueError("Rate table rows require effective_from.")
    return PricingConfig(
        coverage_type=CoverageType(str(raw["coverage_type"])),
        rate_per_square_meter=Decimal(str(raw["rate_per_square_meter"])),
        minimum_premium=Decimal(str(raw["minimum_premium"])),
        maximum_insured_sum=Decimal(str(raw["maximum_insured_sum"])),
        effective_from=effective_from,
        effective_to=_to_date(raw.get("effective_to")),
    )


def resolve_default_config_path() -> Path:
    """Resolve configuration path for source and installed execution."""
    env_path = os.getenv(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)

    candidates = [
        Path.cwd() / DEFAULT_CONFIG_REL_PATH,
        Path(__file__).resolve().parents[3] / DEFAULT_CONFIG_REL_PATH,
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def build_config(raw: dict[str, Any] | None = None) -> AppConfig:
    """Build an AppConfig from a raw mapping, filling in defaults."""
    raw = raw or {}
    pricing = raw.get("pricing") or {}
    validation = raw.get("validation") or {}
    queue = raw.get("import_queue") or {}
    logging_raw = raw.get("logging") or {}

    return AppConfig(
        pricing=PricingSettings(
            valuation_multiplier=Decimal(str(pricing.get("valuation_multiplier", "1000"))),
            default_coverage_type=CoverageType(
                str(pricing.get("default_coverage_type", CoverageType.catnat.value))
            ),
            rates=tuple(_parse_rate(row) for row in pricing.get("rates") or DEFAULT_RATES),
        ),
        validation=ValidationSettings(
            min_square_meters=Decimal(str(validation.get("min_square_meters", "10"))),
            max_square_meters=Decimal(str(validation.get("max_square_meters", "50000"))),
            allowed_extensions=tuple(
                str(ext).lower()
                for ext in validation.get("allowed_extensions", [".csv", ".xls", ".xlsx"])
            ),
            max_upload_bytes=int(validation.get("max_upload_bytes", 10 * 1024 * 1024)),
        ),
        import_queue=ImportQueueSettings(
            authorized_roles=tuple(queue.get("authorized_roles", ["admin", "broker"])),
            max_jobs_per_session=int(queue.get("max_jobs_per_session", 100)),
            job_retention_hours=int(queue.get("job_retention_hours", 24)),
            content_clear_delay_seconds=float(queue.get("content_clear_delay_seconds", 5)),
        ),
        logging=LoggingConfig(
            level=str(logging_raw.get("level", "INFO")).upper(),
            audit_retention_days=int(logging_raw.get("audit_retention_days", 1095)),
        ),
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the app configuration from YAML, or defaults when no file exists."""
    path = config_path or resolve_default_config_path()
    if not path.exists():
        return build_config()
    with path.open("r", encoding="utf-8") as file:
        raw = yaml.safe_load(file)
    return build_config(raw)
