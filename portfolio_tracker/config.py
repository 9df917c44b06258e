"""
Configuration loading and validation for the portfolio tracker.

This module uses standard library dataclasses for configuration objects,
with explicit, pure validation functions applied to the raw YAML before any
objects are built.
"""

import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Dict, Any, Type, cast

__all__ = ["load_config", "Config"]


# §1. Nested Configuration Dataclasses
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class RunConfig:
    name: str
    output_dir: Path


@dataclass(frozen=True)
class DataConfig:
    ledger_dir: Path
    format: Literal["csv", "parquet"] = "csv"


@dataclass(frozen=True)
class AnalyticsConfig:
    risk_free_rate: float = 0.02
    trading_days_per_year: int = 252


@dataclass(frozen=True)
class RecommendationConfig:
    success_threshold: float = 70.0
    high_confidence: float = 80.0
    medium_confidence: float = 60.0
    use_current_prices: bool = True


@dataclass(frozen=True)
class ReportingConfig:
    output_formats: List[Literal["json", "markdown", "csv"]] = field(
        default_factory=lambda: ["json", "markdown", "csv"]
    )


# §2. Top-Level Configuration
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class Config:
    """The root configuration object, composing all nested sections."""
    run: RunConfig
    data: DataConfig
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    recommendations: RecommendationConfig = field(default_factory=RecommendationConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)


# §3. Validation and Loading
# --------------------------------------------------------------------------------------

VALID_FORMATS = {"csv", "parquet"}
VALID_OUTPUT_FORMATS = {"json", "markdown", "csv"}


def _from_dict(data_class: Type[Any], data: Any) -> Any:
    """Recursively creates nested dataclasses from a dictionary."""
    if isinstance(data, dict):
        field_types = {f.name: f.type for f in data_class.__dataclass_fields__.values()}

        kwargs = {}
        for k, v in data.items():
            field_type = field_types.get(k)
            # Unknown keys pass through; the dataclass constructor rejects them
            # with a TypeError, which the caller reports.
            kwargs[k] = _from_dict(field_type, v) if field_type else v
        return data_class(**kwargs)

    if isinstance(data, str) and data_class is Path:
        return Path(data)
    return data


def _validate_config(cfg: Dict[str, Any]) -> None:
    """
    Performs simple, explicit validation checks on the raw config dictionary.
    Fail fast on any logical inconsistencies.
    """
    if not isinstance(cfg, dict):
        raise ValueError("Configuration must be a YAML object.")

    for section in ("run", "data"):
        if not isinstance(cfg.get(section), dict):
            raise ValueError(f"Missing required section: {section}")

    data_format = cfg["data"].get("format", "csv")
    if data_format not in VALID_FORMATS:
        raise ValueError(f"data.format must be one of {sorted(VALID_FORMATS)}, got {data_format!r}")

    analytics = cfg.get("analytics") or {}
    if not 0 <= analytics.get("risk_free_rate", 0.02) < 1:
        raise ValueError("analytics.risk_free_rate must be in [0, 1)")
    if analytics.get("trading_days_per_year", 252) <= 0:
        raise ValueError("analytics.trading_days_per_year must be positive")

    recs = cfg.get("recommendations") or {}
    high = recs.get("high_confidence", 80.0)
    medium = recs.get("medium_confidence", 60.0)
    if not 0 <= medium < high <= 100:
        raise ValueError("recommendations confidence bounds must satisfy 0 <= medium < high <= 100")
    if not 0 <= recs.get("success_threshold", 70.0) <= 100:
        raise ValueError("recommendations.success_threshold must be in [0, 100]")

    reporting = cfg.get("reporting") or {}
    unknown = set(reporting.get("output_formats", [])) - VALID_OUTPUT_FORMATS
    if unknown:
        raise ValueError(f"Unknown reporting.output_formats: {sorted(unknown)}")


# impure
def load_config(config_path: Path) -> Config:
    """
    Loads and validates a YAML configuration file into a Config object.
    #impure: Reads from the filesystem.
    """
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in {config_path}: {e}") from e

    _validate_config(raw_config)

    try:
        # _from_dict is too dynamic for mypy to track the resulting type.
        return cast(Config, _from_dict(Config, raw_config))
    except (TypeError, KeyError) as e:
        raise ValueError(f"Configuration validation failed: missing or invalid key. Details: {e}") from e
