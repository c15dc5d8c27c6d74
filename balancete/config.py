"""
Application configuration using pydantic-settings.

Loads configuration from environment variables with sensible defaults.
The heuristic constants used by the reconciliation and ranking passes are
calibrated against one text-extraction tool; they live here so they can be
recalibrated per extraction source without touching the algorithms.
"""
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from balancete.exceptions import ConfigurationError


class HeuristicSettings(BaseModel):
    """Calibration constants for totals correction, outlier filtering and rankings."""

    # Assets: a stray leading "1" adds exactly 10M to the true total
    assets_glue_low: Decimal = Decimal("10000000")
    assets_glue_high: Decimal = Decimal("20000000")
    assets_glue_offset: Decimal = Decimal("10000000")

    # Liabilities: a stray leading digit shifts magnitude by one order
    liabilities_shift_low: Decimal = Decimal("30000000")
    liabilities_shift_high: Decimal = Decimal("40000000")
    liabilities_shift_divisor: Decimal = Decimal("10")
    plausibility_min_ratio: Decimal = Decimal("0.2")
    plausibility_max_ratio: Decimal = Decimal("5")

    # Liabilities: glued "2" / "1" prefixes
    liabilities_glue_high_low: Decimal = Decimal("20000000")
    liabilities_glue_high_high: Decimal = Decimal("30000000")
    liabilities_glue_high_offset: Decimal = Decimal("20000000")
    liabilities_glue_low_low: Decimal = Decimal("10000000")
    liabilities_glue_low_high: Decimal = Decimal("20000000")
    liabilities_glue_low_offset: Decimal = Decimal("10000000")

    # Liabilities: implausible magnitudes
    implausible_assets_multiplier: Decimal = Decimal("20")
    implausible_floor: Decimal = Decimal("200000000")
    implausible_ceiling_without_assets: Decimal = Decimal("1000000000")
    liabilities_candidate_cap_ratio: Decimal = Decimal("5")
    liabilities_candidate_cap_floor: Decimal = Decimal("50000000")
    max_relative_error: Decimal = Decimal("0.35")

    # Outlier filter applied before rankings
    outlier_cap_ratio: Decimal = Decimal("1.05")
    small_assets_threshold: Decimal = Decimal("200000000")
    small_assets_ceiling: Decimal = Decimal("1000000000")
    unknown_assets_ceiling: Decimal = Decimal("1000000000000")

    # Rankings
    top_assets_size: int = 10
    top_liabilities_size: int = 10
    top_variances_size: int = 15
    pareto_size: int = 10
    evidence_size: int = 10
    min_variance: Decimal = Decimal("0.01")
    high_variance_pct: Decimal = Decimal("50")

    @model_validator(mode="after")
    def _check_bands(self) -> "HeuristicSettings":
        bands = {
            "assets_glue": (self.assets_glue_low, self.assets_glue_high),
            "liabilities_shift": (self.liabilities_shift_low, self.liabilities_shift_high),
            "liabilities_glue_high": (self.liabilities_glue_high_low, self.liabilities_glue_high_high),
            "liabilities_glue_low": (self.liabilities_glue_low_low, self.liabilities_glue_low_high),
            "plausibility": (self.plausibility_min_ratio, self.plausibility_max_ratio),
        }
        for name, (low, high) in bands.items():
            if low >= high:
                raise ValueError(f"{name} band is empty: {low} >= {high}")

        if self.liabilities_shift_divisor <= 0:
            raise ValueError("liabilities_shift_divisor must be positive")
        if self.max_relative_error <= 0 or self.outlier_cap_ratio <= 0:
            raise ValueError("ratios must be positive")
        for size in (
            self.top_assets_size,
            self.top_liabilities_size,
            self.top_variances_size,
            self.pareto_size,
            self.evidence_size,
        ):
            if size < 0:
                raise ValueError("ranking sizes cannot be negative")
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BALANCETE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Pipeline
    default_granularity: str = "quarterly"
    max_workers: int = 1
    sample_chars: int = 1200

    heuristics: HeuristicSettings = HeuristicSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid balancete configuration",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e
