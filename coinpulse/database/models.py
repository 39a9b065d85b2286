"""
Data models for CoinPulse.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class AlertType(str, Enum):
    """Kinds of notification the monitor can produce."""

    HEALTH_SCORE = "health_score"
    CONSISTENCY_SCORE = "consistency_score"
    PRICE_DROP = "price_drop"
    MIGRATION = "migration"
    DELISTING = "delisting"
    # Synthetic summaries built by the delivery batcher
    MARKET_EVENT = "market_event"
    PORTFOLIO_BATCH = "portfolio_batch"

    @property
    def is_summary(self) -> bool:
        return self in (AlertType.MARKET_EVENT, AlertType.PORTFOLIO_BATCH)


# Alert types a user can subscribe to
USER_ALERT_TYPES = (
    AlertType.HEALTH_SCORE,
    AlertType.CONSISTENCY_SCORE,
    AlertType.PRICE_DROP,
    AlertType.MIGRATION,
    AlertType.DELISTING,
)


class ReportStatus(str, Enum):
    """Lifecycle of a community migration/delisting report."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass
class User:
    """User with an optional email address."""

    id: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class AlertDefinition:
    """A user's threshold alert on one coin."""

    user_id: str
    coin_id: str
    alert_type: AlertType
    threshold_value: float
    is_active: bool = True
    id: Optional[int] = None


@dataclass
class NotificationPreference:
    """Per-user delivery preferences."""

    snooze_enabled: bool = False
    snooze_duration_hours: float = 16
    email_alerts: bool = False
    critical_only: bool = False
    important_and_critical: bool = True
    all_notifications: bool = False
    batch_portfolio_alerts: bool = True
    max_notifications_per_hour: int = 10


@dataclass
class ActivitySample:
    """One daily observation of a coin's developer and social activity."""

    coin_id: str
    date: Optional[datetime]
    developer_last_update: Optional[datetime] = None
    social_first_post_date: Optional[datetime] = None


@dataclass
class CoinSnapshot:
    """Current state of a coin for one monitoring cycle."""

    coin_id: str
    name: str
    symbol: str
    price: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    developer_stars: float = 0.0
    developer_forks: float = 0.0
    developer_last_update: Optional[datetime] = None
    social_followers: float = 0.0
    social_first_post_date: Optional[datetime] = None
    health_score: Optional[float] = None
    consistency_score: Optional[float] = None


@dataclass
class CandidateNotification:
    """In-memory decision that a user should be alerted."""

    user_id: str
    coin_id: str
    coin_name: str
    coin_symbol: str
    alert_type: AlertType
    current_value: float
    threshold_value: float
    message: str

    @property
    def deviation(self) -> float:
        return abs(self.current_value - self.threshold_value)


@dataclass
class NotificationLogEntry:
    """Persisted record of a delivered notification."""

    user_id: str
    coin_id: str
    alert_type: str
    message: str
    sent_at: datetime
    delivery_status: str = "sent"
    id: Optional[int] = None


@dataclass
class CoinReport:
    """Community report that a coin is migrating or being delisted."""

    coin_id: str
    alert_type: AlertType
    status: ReportStatus = ReportStatus.PENDING
    archived: bool = False
    proof_link: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None


@dataclass
class CycleResult:
    """Statistics for one monitoring cycle."""

    alerts_processed: int = 0
    notifications_triggered: int = 0
    notifications_sent: int = 0
    market_wide_event: bool = False
    details: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "alertsProcessed": self.alerts_processed,
            "notificationsTriggered": self.notifications_triggered,
            "notificationsSent": self.notifications_sent,
            "marketWideEvent": self.market_wide_event,
            "details": self.details,
        }
