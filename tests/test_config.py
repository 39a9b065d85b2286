"""
Configuration loading tests.
"""

from pathlib import Path

import pytest

from coinpulse.config import (
    AppConfig,
    ConfigValidationError,
    CooldownConfig,
    load_config,
)
from coinpulse.database.models import AlertType


def write_config(tmp_path: Path, text: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


class TestLoadConfig:
    """Test YAML loading."""

    def test_missing_file(self, tmp_path: Path):
        """Should raise FileNotFoundError for a missing file."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_empty_file_uses_defaults(self, tmp_path: Path):
        """Should fall back to defaults for an empty file."""
        config = load_config(write_config(tmp_path, ""))

        assert config == AppConfig()
        assert config.schedule.batch_size == 20
        assert config.preferences.max_notifications_per_hour == 10

    def test_nested_values(self, tmp_path: Path):
        """Should build nested sections and keep unspecified defaults."""
        config = load_config(
            write_config(
                tmp_path,
                f"""
database:
  path: {tmp_path / "db.sqlite"}
cooldowns:
  price_drop: 4
scoring:
  consistency:
    lookback_days: 14
preferences:
  batch_portfolio_alerts: false
""",
            )
        )

        assert config.cooldowns.price_drop == 4
        assert config.cooldowns.delisting == 48
        assert config.scoring.consistency.lookback_days == 14
        assert config.scoring.consistency.developer_weight == 0.7
        assert config.preferences.batch_portfolio_alerts is False

    def test_env_substitution(self, tmp_path: Path, monkeypatch):
        """Should substitute ${VAR} from the environment."""
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        config = load_config(
            write_config(
                tmp_path,
                """
notifications:
  email:
    smtp_host: ${SMTP_HOST}
    smtp_password: ${UNSET_SECRET_FOR_TEST}
""",
            )
        )

        assert config.notifications.email.smtp_host == "smtp.example.com"
        assert config.notifications.email.smtp_password == ""

    def test_unknown_key(self, tmp_path: Path):
        """Should reject unknown keys."""
        with pytest.raises(ConfigValidationError, match="colldowns"):
            load_config(write_config(tmp_path, "colldowns:\n  price_drop: 1\n"))


class TestValidation:
    """Test configuration validation."""

    @pytest.mark.parametrize(
        "text",
        [
            "schedule:\n  interval_minutes: 0\n",
            "schedule:\n  batch_size: -1\n",
            "cooldowns:\n  migration: -2\n",
            "scoring:\n  consistency:\n    developer_weight: 1.5\n",
            "scoring:\n  low_cap_fraction: 0.5\n  mid_cap_fraction: 0.1\n",
            "database:\n  path: ''\n",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, text: str):
        """Should raise ConfigValidationError for invalid values."""
        with pytest.raises(ConfigValidationError):
            load_config(write_config(tmp_path, text))


class TestCooldownConfig:
    """Test cooldown lookup."""

    def test_hours_for_user_types(self):
        """Should return the per-type defaults."""
        cooldowns = CooldownConfig()
        assert cooldowns.hours_for(AlertType.HEALTH_SCORE) == 1
        assert cooldowns.hours_for(AlertType.PRICE_DROP) == 2
        assert cooldowns.hours_for(AlertType.DELISTING) == 48

    def test_hours_for_summaries(self):
        """Should fall back to one hour for summary notifications."""
        assert CooldownConfig().hours_for(AlertType.PORTFOLIO_BATCH) == 1
