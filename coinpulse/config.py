"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from coinpulse.database.models import AlertType, NotificationPreference


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/coinpulse.db"


@dataclass
class DataSourceConfig:
    """Coin feed configuration."""

    feed_url: str = "https://cocricoin.b-cdn.net/crypto_data.json"
    request_timeout_seconds: float = 30
    max_retries: int = 3
    retry_delay_seconds: float = 5


@dataclass
class ScheduleConfig:
    """Monitoring cycle schedule."""

    interval_minutes: int = 30
    batch_size: int = 20
    batch_delay_seconds: float = 0.1


@dataclass
class CooldownConfig:
    """Minimum hours between repeat notifications, per alert type."""

    health_score: float = 1
    consistency_score: float = 1
    price_drop: float = 2
    migration: float = 48
    delisting: float = 48

    def hours_for(self, alert_type: AlertType) -> float:
        """Default cooldown for an alert type; summaries fall back to 1 hour."""
        return getattr(self, AlertType(alert_type).value, 1)


@dataclass
class MarketEventConfig:
    """Thresholds that classify a cycle as a market-wide event."""

    total_threshold: int = 50
    price_drop_coins_threshold: int = 20
    price_drop_count_threshold: int = 20
    velocity_threshold: int = 30
    velocity_window_minutes: int = 15


@dataclass
class DeliveryConfig:
    """Per-user delivery policy."""

    batch_threshold: int = 5
    rate_limit_window_minutes: int = 60


@dataclass
class ConsistencyConfig:
    """Consistency score constants."""

    lookback_days: int = 30
    developer_freq_baseline: float = 20
    social_freq_baseline: float = 60
    developer_staleness_max: float = 90
    social_staleness_max: float = 30
    developer_weight: float = 0.7
    social_weight: float = 0.6
    global_blend: float = 0.6


@dataclass
class HealthWeights:
    """Point budgets for the health score components (sum to 100)."""

    stars_points: float = 25
    forks_points: float = 15
    followers_points: float = 30
    liquidity_points: float = 20
    market_cap_points: float = 10
    stars_log_scale: float = 5
    forks_log_scale: float = 3
    followers_log_scale: float = 4
    liquidity_scale: float = 100
    # Market cap starts scoring at 10^6
    market_cap_log_offset: float = 6
    developer_staleness_days: float = 90
    social_staleness_days: float = 30
    # Share of developer/social points kept however stale the activity is
    recency_floor: float = 0.5


@dataclass
class ScoringConfig:
    """Scoring and market analysis policy."""

    consistency: ConsistencyConfig = field(default_factory=ConsistencyConfig)
    health: HealthWeights = field(default_factory=HealthWeights)
    low_cap_fraction: float = 1 / 1000
    mid_cap_fraction: float = 1 / 200
    neutral_score: float = 50
    report_window_days: int = 30


@dataclass
class EmailNotificationConfig:
    """SMTP email settings."""

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_address: str = "notifications@coinpulse.app"


@dataclass
class NotificationsConfig:
    """Notifications configuration."""

    email: EmailNotificationConfig = field(default_factory=EmailNotificationConfig)


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    cooldowns: CooldownConfig = field(default_factory=CooldownConfig)
    market_event: MarketEventConfig = field(default_factory=MarketEventConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    preferences: NotificationPreference = field(default_factory=NotificationPreference)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _build(cls: type, values: Optional[dict[str, Any]]) -> Any:
    """Build a (possibly nested) config dataclass from a dict."""
    values = values or {}
    known = {f.name: f for f in fields(cls)}
    unknown = set(values) - set(known)
    if unknown:
        raise ConfigValidationError(
            f"Unknown {cls.__name__} keys: {', '.join(sorted(unknown))}"
        )

    kwargs = {}
    for name, value in values.items():
        default = known[name].default_factory
        if isinstance(value, dict) and callable(default):
            kwargs[name] = _build(type(default()), value)
        else:
            kwargs[name] = value
    return cls(**kwargs)


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values."""
    db_path = config.database.path
    if not db_path:
        raise ConfigValidationError("Database path is required")

    parent = Path(db_path).parent
    if db_path != ":memory:" and parent.exists() and not os.access(parent, os.W_OK):
        raise ConfigValidationError(f"Database path not writable: {parent}")

    if config.schedule.interval_minutes <= 0:
        raise ConfigValidationError("Schedule interval must be positive")
    if config.schedule.batch_size <= 0:
        raise ConfigValidationError("Batch size must be positive")

    for f in fields(config.cooldowns):
        if getattr(config.cooldowns, f.name) < 0:
            raise ConfigValidationError(f"Cooldown for {f.name} cannot be negative")

    if config.preferences.max_notifications_per_hour < 0:
        raise ConfigValidationError("max_notifications_per_hour cannot be negative")

    consistency = config.scoring.consistency
    for name in ("developer_weight", "social_weight", "global_blend"):
        weight = getattr(consistency, name)
        if not 0 <= weight <= 1:
            raise ConfigValidationError(f"Consistency {name} must be within [0, 1]")
    for name in (
        "developer_freq_baseline",
        "social_freq_baseline",
        "developer_staleness_max",
        "social_staleness_max",
    ):
        if getattr(consistency, name) <= 0:
            raise ConfigValidationError(f"Consistency {name} must be positive")

    scoring = config.scoring
    if not 0 < scoring.low_cap_fraction <= scoring.mid_cap_fraction <= 1:
        raise ConfigValidationError(
            "Cap fractions must satisfy 0 < low_cap_fraction <= mid_cap_fraction <= 1"
        )


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    config = _build(AppConfig, config_dict)
    _validate_config(config)
    return config
