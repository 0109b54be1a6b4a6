"""Unit tests for core configuration module."""
import pytest
from pathlib import Path
from pydantic import ValidationError

from stockfunnel.core.config import (
    AIConfig,
    RiskConfig,
    Settings,
    SwingConfig,
    TradePlanConfig,
    UniverseConfig,
    load_settings,
)


def test_load_config_file(tmp_path):
    """Test loading configuration from YAML file."""
    yaml_content = """
system:
  name: "TestFunnel"
  log_level: "DEBUG"
data:
  sqlite_path: "data/test.db"
swing:
  limit: 25
ai:
  enabled: false
  min_confidence: 7.0
risk:
  max_positions: 3
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml_content)

    settings = load_settings(config_file)
    assert settings.system.name == "TestFunnel"
    assert settings.system.log_level == "DEBUG"
    assert settings.data.sqlite_path == "data/test.db"
    assert settings.swing.limit == 25
    assert settings.ai.enabled is False
    assert settings.ai.min_confidence == 7.0
    assert settings.risk.max_positions == 3
    # untouched sections keep their defaults
    assert settings.longterm.limit == 10


def test_settings_defaults():
    """Test default Settings configuration."""
    settings = Settings()
    assert settings.system.log_level == "INFO"
    assert settings.swing.limit == 50
    assert settings.longterm.limit == 10
    assert settings.quality.top_limit == 40
    assert settings.ai.max_candidates == 15
    assert settings.ai.min_confidence == 6.5
    assert settings.trade_plan.min_risk_reward == 2.0
    assert settings.selection.max_correlated_picks == 2


def test_repo_default_yaml_loads():
    """The shipped config/default.yaml matches the settings schema."""
    path = Path(__file__).resolve().parents[2] / "config" / "default.yaml"
    settings = load_settings(path)
    assert settings.ai.api_key_env == "OPENAI_API_KEY"
    assert settings.setup.swing_max_extension == 12.0


def test_config_file_not_found():
    """Test error when config file doesn't exist."""
    with pytest.raises(FileNotFoundError):
        load_settings(Path("nonexistent.yaml"))


def test_empty_config_file_gives_defaults(tmp_path):
    config_file = tmp_path / "empty.yaml"
    config_file.write_text("")
    assert load_settings(config_file) == Settings()


def test_non_mapping_root_rejected(tmp_path):
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_settings(config_file)


class TestValidation:
    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"system": {"log_level": "TRACE"}})

    def test_swing_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            SwingConfig(base_weight=0.7, mtf_weight=0.4)

    def test_price_band_ordering(self):
        with pytest.raises(ValidationError):
            UniverseConfig(min_price=100.0, max_price=50.0)

    def test_min_confidence_scale(self):
        with pytest.raises(ValidationError):
            AIConfig(min_confidence=11)

    def test_timeout_positive(self):
        with pytest.raises(ValidationError):
            AIConfig(timeout_seconds=0)

    def test_risk_pct_range(self):
        with pytest.raises(ValidationError):
            TradePlanConfig(risk_pct=0)

    def test_max_position_pct_fraction(self):
        with pytest.raises(ValidationError):
            RiskConfig(max_position_pct=1.5)

    def test_negative_limits_rejected(self):
        with pytest.raises(ValidationError):
            RiskConfig(max_positions=-1)
