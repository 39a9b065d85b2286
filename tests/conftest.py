"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from coinpulse.database.connection import Database
from coinpulse.database.models import (
    ActivitySample,
    AlertDefinition,
    AlertType,
    CandidateNotification,
    CoinSnapshot,
    NotificationLogEntry,
    NotificationPreference,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeBackend:
    """In-memory MonitorBackend used by the delivery and monitor tests."""

    def __init__(self):
        self.alerts: list[AlertDefinition] = []
        self.coins: dict[str, CoinSnapshot] = {}
        self.preferences: dict[str, NotificationPreference] = {}
        self.log: list[NotificationLogEntry] = []
        self.reports: set[tuple[str, str]] = set()
        self.samples: dict[str, list[ActivitySample]] = {}
        self.emails: dict[str, str] = {}
        self.sent_emails: list[tuple[str, CandidateNotification]] = []

    async def fetch_active_alerts(self) -> list[AlertDefinition]:
        return [a for a in self.alerts if a.is_active]

    async def fetch_coin_snapshot(self, coin_id: str) -> Optional[CoinSnapshot]:
        return self.coins.get(coin_id)

    async def fetch_user_preferences(self, user_id: str) -> NotificationPreference:
        return self.preferences.get(user_id, NotificationPreference())

    async def fetch_latest_notification(
        self, user_id, coin_id, alert_type, since=None
    ) -> Optional[NotificationLogEntry]:
        matches = [
            e
            for e in self.log
            if e.user_id == user_id
            and e.coin_id == coin_id
            and e.alert_type == alert_type
            and (since is None or e.sent_at >= since)
        ]
        return max(matches, key=lambda e: e.sent_at, default=None)

    async def count_notifications_since(self, since, user_id=None) -> int:
        return sum(
            1
            for e in self.log
            if e.sent_at >= since and (user_id is None or e.user_id == user_id)
        )

    async def append_notification_log(self, entry: NotificationLogEntry) -> None:
        self.log.append(entry)

    async def fetch_verified_community_report(self, coin_id, alert_type) -> bool:
        return (coin_id, AlertType(alert_type).value) in self.reports

    async def fetch_activity_samples(self, coin_id, since) -> list[ActivitySample]:
        return [s for s in self.samples.get(coin_id, []) if s.date >= since]

    async def fetch_user_email(self, user_id) -> Optional[str]:
        return self.emails.get(user_id)

    async def send_email(self, email, notification) -> bool:
        self.sent_emails.append((email, notification))
        return True


def make_candidate(
    alert_type: AlertType = AlertType.PRICE_DROP,
    coin_id: str = "bitcoin",
    user_id: str = "u1",
    current_value: float = 7.2,
    threshold_value: float = 5,
) -> CandidateNotification:
    """Build a candidate notification with sensible defaults."""
    return CandidateNotification(
        user_id=user_id,
        coin_id=coin_id,
        coin_name=coin_id.title(),
        coin_symbol=coin_id[:3].upper(),
        alert_type=alert_type,
        current_value=current_value,
        threshold_value=threshold_value,
        message=f"{coin_id} {alert_type.value}",
    )


def log_entry(
    sent_at: datetime,
    alert_type: AlertType = AlertType.PRICE_DROP,
    coin_id: str = "bitcoin",
    user_id: str = "u1",
) -> NotificationLogEntry:
    """Build a notification log entry."""
    return NotificationLogEntry(
        user_id=user_id,
        coin_id=coin_id,
        alert_type=alert_type.value,
        message="previous",
        sent_at=sent_at,
    )


@pytest.fixture
def now():
    """Fixed reference time."""
    return NOW


@pytest.fixture
def backend():
    """Empty in-memory backend."""
    return FakeBackend()


@pytest.fixture
def db():
    """In-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def btc_snapshot():
    """Bitcoin snapshot with a 7.2% daily drop."""
    return CoinSnapshot(
        coin_id="bitcoin",
        name="Bitcoin",
        symbol="BTC",
        price=61_000.0,
        market_cap=1_200_000_000_000,
        volume_24h=30_000_000_000,
        price_change_24h=-7.2,
        developer_stars=75_000,
        developer_forks=35_000,
        developer_last_update=NOW - timedelta(days=1),
        social_followers=6_000_000,
        social_first_post_date=NOW - timedelta(days=2),
        health_score=82,
        consistency_score=71,
    )


@pytest.fixture
def sample_smtp_config():
    """Sample SMTP configuration for testing."""
    return {
        "smtp_host": "smtp.gmail.com",
        "smtp_port": 587,
        "smtp_user": "test@gmail.com",
        "smtp_password": "test-app-password",
        "from_address": "alerts@coinpulse.app",
    }
