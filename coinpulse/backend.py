"""
Collaborator boundary for the monitor.

The monitor only talks to storage, the coin feed and email through
`MonitorBackend`. `SqliteBackend` is the production implementation; tests
substitute in-memory fakes.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Protocol

from coinpulse.config import AppConfig
from coinpulse.data.fetcher import CoinFeedFetcher
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
from coinpulse.database.repository import (
    ActivityRepository,
    AlertRepository,
    CoinReportRepository,
    NotificationLogRepository,
    PreferenceRepository,
    UserRepository,
)
from coinpulse.notifiers.base import NotificationResult, Notifier

logger = logging.getLogger(__name__)


class MonitorBackend(Protocol):
    """External collaborators consumed by a monitoring cycle."""

    async def fetch_active_alerts(self) -> list[AlertDefinition]: ...

    async def fetch_coin_snapshot(self, coin_id: str) -> Optional[CoinSnapshot]: ...

    async def fetch_user_preferences(self, user_id: str) -> NotificationPreference: ...

    async def fetch_latest_notification(
        self,
        user_id: str,
        coin_id: str,
        alert_type: str,
        since: Optional[datetime] = None,
    ) -> Optional[NotificationLogEntry]: ...

    async def count_notifications_since(
        self, since: datetime, user_id: Optional[str] = None
    ) -> int: ...

    async def append_notification_log(self, entry: NotificationLogEntry) -> None: ...

    async def fetch_verified_community_report(
        self, coin_id: str, alert_type: AlertType
    ) -> bool: ...

    async def fetch_activity_samples(
        self, coin_id: str, since: datetime
    ) -> list[ActivitySample]: ...

    async def fetch_user_email(self, user_id: str) -> Optional[str]: ...

    async def send_email(
        self, email: str, notification: CandidateNotification
    ) -> bool: ...


class SqliteBackend:
    """MonitorBackend over SQLite, the JSON coin feed and SMTP email."""

    def __init__(
        self,
        db: Database,
        fetcher: CoinFeedFetcher,
        notifier: Optional[Notifier] = None,
        default_preferences: Optional[NotificationPreference] = None,
        report_window_days: Optional[int] = 30,
    ):
        """
        Initialize the backend.

        Args:
            db: Initialized database
            fetcher: Coin feed client
            notifier: Email notifier; email delivery is skipped when None
            default_preferences: Preferences for users who never saved any
            report_window_days: How recent a verified report must be to count
        """
        self.fetcher = fetcher
        self.notifier = notifier
        self.default_preferences = default_preferences or NotificationPreference()
        self.report_window_days = report_window_days

        self.user_repo = UserRepository(db)
        self.alert_repo = AlertRepository(db)
        self.preference_repo = PreferenceRepository(db)
        self.log_repo = NotificationLogRepository(db)
        self.report_repo = CoinReportRepository(db)
        self.activity_repo = ActivityRepository(db)

    @classmethod
    def from_config(cls, config: AppConfig, db: Database) -> "SqliteBackend":
        """Wire the backend from application configuration."""
        from coinpulse.notifiers.email import EmailNotifier

        fetcher = CoinFeedFetcher.from_config(config.data_source)
        email = config.notifications.email
        notifier = None
        if email.smtp_host:
            notifier = EmailNotifier(
                smtp_host=email.smtp_host,
                smtp_port=email.smtp_port,
                smtp_user=email.smtp_user,
                smtp_password=email.smtp_password,
                from_address=email.from_address,
            )
        return cls(
            db=db,
            fetcher=fetcher,
            notifier=notifier,
            default_preferences=config.preferences,
            report_window_days=config.scoring.report_window_days,
        )

    async def fetch_active_alerts(self) -> list[AlertDefinition]:
        return self.alert_repo.get_active()

    async def fetch_coin_snapshot(self, coin_id: str) -> Optional[CoinSnapshot]:
        return await asyncio.to_thread(self.fetcher.get_snapshot, coin_id)

    async def fetch_user_preferences(self, user_id: str) -> NotificationPreference:
        prefs = self.preference_repo.get(user_id)
        return prefs if prefs is not None else self.default_preferences

    async def fetch_latest_notification(
        self,
        user_id: str,
        coin_id: str,
        alert_type: str,
        since: Optional[datetime] = None,
    ) -> Optional[NotificationLogEntry]:
        return self.log_repo.latest_for(user_id, coin_id, alert_type, since)

    async def count_notifications_since(
        self, since: datetime, user_id: Optional[str] = None
    ) -> int:
        return self.log_repo.count_since(since, user_id)

    async def append_notification_log(self, entry: NotificationLogEntry) -> None:
        self.log_repo.append(entry)

    async def fetch_verified_community_report(
        self, coin_id: str, alert_type: AlertType
    ) -> bool:
        return self.report_repo.has_verified(
            coin_id, AlertType(alert_type).value, self.report_window_days
        )

    async def fetch_activity_samples(
        self, coin_id: str, since: datetime
    ) -> list[ActivitySample]:
        return self.activity_repo.samples_since(coin_id, since)

    async def fetch_user_email(self, user_id: str) -> Optional[str]:
        user = self.user_repo.get_by_id(user_id)
        return user.email if user else None

    async def send_email(self, email: str, notification: CandidateNotification) -> bool:
        if self.notifier is None:
            logger.warning("Email delivery is not configured, skipping email")
            return False
        result: NotificationResult = await asyncio.to_thread(
            self.notifier.send, notification, email
        )
        if not result.success:
            logger.error(f"Email to {email} failed: {result.error}")
        return result.success
