"""Unit tests for configuration management.

Tests cover:
- Default configuration values
- TOML file loading
- Environment variable overrides
- Tier and pricing resolution on AIConfig
- Validation errors for invalid configurations
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from specforge.config import (
    AIConfig,
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    PipelineConfig,
    SpecForgeConfig,
    TierPricing,
    WebConfig,
    load_config,
)


class TestDatabaseConfig:
    """Test DatabaseConfig defaults and validation."""

    def test_default_values(self) -> None:
        config = DatabaseConfig()
        assert config.url.startswith("postgresql+asyncpg://")
        assert config.pool_size == 5
        assert config.max_overflow == 10
        assert config.echo is False

    def test_pool_size_validation(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(pool_size=0)
        with pytest.raises(ValidationError):
            DatabaseConfig(pool_size=101)


class TestLoggingConfig:
    """Test LoggingConfig normalization."""

    def test_level_is_uppercased(self) -> None:
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")


class TestAIConfig:
    """Test tier resolution and cost accounting."""

    def test_default_tiers(self) -> None:
        config = AIConfig()
        assert config.tier_for("chat") == "standard"
        assert config.tier_for("research_phase_3") == "advanced"
        assert config.tier_for("generation") == "advanced"

    def test_unconfigured_call_site_falls_back_to_standard(self) -> None:
        config = AIConfig(phase_tiers={"chat": "advanced"})
        assert config.tier_for("chat") == "advanced"
        assert config.tier_for("research_phase_1") == "standard"

    def test_unknown_call_site_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown call sites"):
            AIConfig(phase_tiers={"summarize": "standard"})

    def test_model_for_unknown_tier(self) -> None:
        with pytest.raises(ValueError, match="No model configured"):
            AIConfig().model_for("premium")

    def test_cost_for(self) -> None:
        config = AIConfig(
            pricing={"standard": TierPricing(input_per_mtok=3.0, output_per_mtok=15.0)}
        )
        cost = config.cost_for("standard", input_tokens=1_000_000, output_tokens=100_000)
        assert cost == pytest.approx(3.0 + 1.5)

    def test_cost_for_unpriced_tier_is_zero(self) -> None:
        assert AIConfig(pricing={}).cost_for("standard", 1000, 1000) == 0.0


class TestPipelineConfig:
    def test_defaults(self) -> None:
        config = PipelineConfig()
        assert config.readiness_phrase == "i have enough context to begin research"
        assert config.reminder_after_days == 3
        assert config.upsell_after_days == 7

    def test_budget_lower_bound(self) -> None:
        with pytest.raises(ValidationError):
            PipelineConfig(research_budget_seconds=1)


class TestSpecForgeConfig:
    """Test root config aggregation and environment overrides."""

    def test_default_sections(self) -> None:
        config = SpecForgeConfig()
        assert isinstance(config.web, WebConfig)
        assert isinstance(config.notifications, NotificationConfig)
        assert config.notifications.endpoints == []

    def test_env_override_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPECFORGE_DATABASE__URL", "postgresql+asyncpg://env/db")
        monkeypatch.setenv("SPECFORGE_AI__API_KEY", "sk-from-env")
        config = SpecForgeConfig()
        assert config.database.url == "postgresql+asyncpg://env/db"
        assert config.ai.api_key == "sk-from-env"

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            SpecForgeConfig(unknown_section={})


class TestLoadConfig:
    """Test TOML loading."""

    def test_load_from_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "specforge.toml"
        path.write_text(
            """
[database]
url = "postgresql+asyncpg://toml/db"

[pipeline]
reminder_after_days = 5

[ai.phase_tiers]
research_phase_1 = "advanced"

[[notifications.endpoints]]
url = "https://hooks.example.com/specforge"
secret = "s3cret"
"""
        )
        config = load_config(path)
        assert config.database.url == "postgresql+asyncpg://toml/db"
        assert config.pipeline.reminder_after_days == 5
        assert config.ai.tier_for("research_phase_1") == "advanced"
        assert config.notifications.endpoints[0].secret == "s3cret"

    def test_missing_explicit_path(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_values_raise_value_error(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[database]\npool_size = 0\n")
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(path)
