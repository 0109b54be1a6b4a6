"""Core configuration management module."""
from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class SystemConfig(BaseModel):
    """System-level configuration."""

    model_config = ConfigDict(use_enum_values=True)

    name: str = "StockFunnel"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str = "logs"


class DataConfig(BaseModel):
    """Candle storage and history window configuration."""

    model_config = ConfigDict(use_enum_values=True)

    sqlite_path: str = "data/stockfunnel.db"
    daily_history: int = 400
    weekly_history: int = 150
    intraday_history: int = 200
    ensure_fresh: bool = False

    @field_validator("daily_history", "weekly_history", "intraday_history")
    @classmethod
    def validate_history(cls, v: int) -> int:
        """Validate that history limits are positive."""
        if v <= 0:
            raise ValueError("history limits must be positive")
        return v


class UniverseConfig(BaseModel):
    """Basic universe filter configuration."""

    model_config = ConfigDict(use_enum_values=True)

    csv_path: str | None = None
    min_price: float = 50.0
    max_price: float = 50_000.0
    exclude_penny_stocks: bool = True
    penny_threshold: float = 10.0

    @model_validator(mode="after")
    def validate_price_band(self) -> "UniverseConfig":
        if self.min_price < 0 or self.max_price <= self.min_price:
            raise ValueError("price band must satisfy 0 <= min_price < max_price")
        return self


class IndicatorConfig(BaseModel):
    """Indicator periods shared by every stage."""

    model_config = ConfigDict(use_enum_values=True)

    ema_fast: int = 20
    ema_slow: int = 50
    ema_trend: int = 200
    rsi_period: int = 14
    adx_period: int = 14
    atr_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    supertrend_period: int = 10
    supertrend_multiplier: float = 3.0
    volume_lookback: int = 20

    @field_validator(
        "ema_fast", "ema_slow", "ema_trend", "rsi_period", "adx_period",
        "atr_period", "macd_fast", "macd_slow", "macd_signal",
        "supertrend_period", "volume_lookback",
    )
    @classmethod
    def validate_period(cls, v: int) -> int:
        """Validate that indicator periods are positive."""
        if v <= 0:
            raise ValueError("indicator periods must be positive")
        return v


class SwingConfig(BaseModel):
    """Swing screener configuration."""

    model_config = ConfigDict(use_enum_values=True)

    limit: int = 50
    min_daily_bars: int = 50
    include_intraday: bool = True
    require_volume_confirmation: bool = True
    min_volume_spike: float = 1.5
    base_weight: float = 0.6
    mtf_weight: float = 0.4
    progress_interval: int = 10

    @model_validator(mode="after")
    def validate_weights(self) -> "SwingConfig":
        if abs(self.base_weight + self.mtf_weight - 1.0) > 1e-9:
            raise ValueError("base_weight + mtf_weight must equal 1.0")
        return self


class LongtermConfig(BaseModel):
    """Long-term screener configuration."""

    model_config = ConfigDict(use_enum_values=True)

    limit: int = 10
    min_daily_bars: int = 100
    min_weekly_bars: int = 20
    require_weekly_trend: bool = True
    include_intraday: bool = True
    base_weight: float = 0.5
    mtf_weight: float = 0.5
    progress_interval: int = 10

    @model_validator(mode="after")
    def validate_weights(self) -> "LongtermConfig":
        if abs(self.base_weight + self.mtf_weight - 1.0) > 1e-9:
            raise ValueError("base_weight + mtf_weight must equal 1.0")
        return self


class SetupConfig(BaseModel):
    """Zone thresholds used by the setup detectors, in percent."""

    model_config = ConfigDict(use_enum_values=True)

    swing_max_extension: float = 12.0
    swing_consolidation_range: float = 5.0
    swing_breakout_distance: float = 5.0
    swing_ready_low: float = -2.0
    swing_ready_high: float = 5.0
    swing_continuation_high: float = 8.0
    longterm_max_extension: float = 15.0
    longterm_consolidation_range: float = 8.0
    longterm_breakout_distance: float = 8.0
    longterm_accumulate_low: float = -5.0
    longterm_accumulate_high: float = 8.0
    min_adx: float = 20.0
    strong_adx: float = 25.0
    overbought_rsi: float = 75.0


class TradePlanConfig(BaseModel):
    """Trade plan sizing and target configuration."""

    model_config = ConfigDict(use_enum_values=True)

    risk_pct: float = 0.75
    max_capital_pct: float = 12.0
    min_risk_reward: float = 2.0
    target_r_multiple: float = 2.5
    structure_tolerance: float = 1.2
    stop_atr_multiple: float = 2.0
    assumed_capital: float = 100_000.0
    longterm_allocation_pct: float = 5.0

    @field_validator("risk_pct", "max_capital_pct", "longterm_allocation_pct")
    @classmethod
    def validate_percent(cls, v: float) -> float:
        """Validate that percentages are in (0, 100]."""
        if not 0 < v <= 100:
            raise ValueError("percentages must be between 0 and 100")
        return v

    @field_validator("assumed_capital")
    @classmethod
    def validate_capital(cls, v: float) -> float:
        """Validate that the assumed capital is positive."""
        if v <= 0:
            raise ValueError("assumed_capital must be positive")
        return v


class QualityConfig(BaseModel):
    """Trade quality ranker configuration."""

    model_config = ConfigDict(use_enum_values=True)

    top_limit: int = 40


class AIConfig(BaseModel):
    """AI judge configuration."""

    model_config = ConfigDict(use_enum_values=True)

    enabled: bool = True
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    temperature: float = 0.3
    max_tokens: int = 800
    timeout_seconds: float = 30.0
    max_calls_per_day: int = 50
    min_confidence: float = 6.5
    max_candidates: int = 15
    cache_ttl_hours: int = 24

    @field_validator("min_confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        """Validate that min_confidence is on the 0-10 scale."""
        if not 0 <= v <= 10:
            raise ValueError("min_confidence must be between 0 and 10")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that the judge timeout is positive."""
        if v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v


class SelectionConfig(BaseModel):
    """Final selector weights and tiering."""

    model_config = ConfigDict(use_enum_values=True)

    score_weight: float = 0.3
    quality_weight: float = 0.4
    confidence_weight: float = 0.3
    tier_size: int = 5
    capital_floor_ratio: float = 0.5
    max_correlated_picks: int = 2


class RiskConfig(BaseModel):
    """Portfolio limits used when the live risk configuration is unreadable."""

    model_config = ConfigDict(use_enum_values=True)

    max_positions: int = 5
    max_position_pct: float = 0.15
    max_per_sector: int = 2
    daily_trade_budget: int = 5

    @field_validator("max_position_pct")
    @classmethod
    def validate_pct(cls, v: float) -> float:
        """Validate that max_position_pct is between 0 and 1."""
        if not 0 < v <= 1:
            raise ValueError("max_position_pct must be between 0 and 1")
        return v

    @field_validator("max_positions", "max_per_sector", "daily_trade_budget")
    @classmethod
    def validate_counts(cls, v: int) -> int:
        """Validate that limits are non-negative."""
        if v < 0:
            raise ValueError("limits must be non-negative")
        return v


class Settings(BaseModel):
    """Root settings object."""

    model_config = ConfigDict(use_enum_values=True)

    system: SystemConfig = SystemConfig()
    data: DataConfig = DataConfig()
    universe: UniverseConfig = UniverseConfig()
    indicators: IndicatorConfig = IndicatorConfig()
    swing: SwingConfig = SwingConfig()
    longterm: LongtermConfig = LongtermConfig()
    setup: SetupConfig = SetupConfig()
    trade_plan: TradePlanConfig = TradePlanConfig()
    quality: QualityConfig = QualityConfig()
    ai: AIConfig = AIConfig()
    selection: SelectionConfig = SelectionConfig()
    risk: RiskConfig = RiskConfig()


def load_settings(config_path: Path | str) -> Settings:
    """Load settings from a YAML configuration file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Settings object loaded from the file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the YAML is invalid or validation fails.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    return Settings.model_validate(data)
