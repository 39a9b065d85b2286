"""
Repository classes for CRUD operations.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from coinpulse.timeutil import format_timestamp, parse_timestamp, utcnow
from .connection import Database
from .models import (
    ActivitySample,
    AlertDefinition,
    AlertType,
    CoinReport,
    NotificationLogEntry,
    NotificationPreference,
    ReportStatus,
    User,
)

logger = logging.getLogger(__name__)


class UserRepository:
    """CRUD operations for users."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, user: User) -> User:
        """Create a new user."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "INSERT INTO users (id, email) VALUES (?, ?)",
            (user.id, user.email),
        )
        self.db.connection.commit()
        return user

    def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_all(self) -> list[User]:
        """List all users."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM users ORDER BY id")
        return [self._row_to_user(row) for row in cursor.fetchall()]

    def _row_to_user(self, row) -> User:
        """Convert database row to User."""
        return User(
            id=row["id"],
            email=row["email"],
            created_at=parse_timestamp(row["created_at"]),
        )


class AlertRepository:
    """CRUD operations for user alert definitions."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, alert: AlertDefinition) -> AlertDefinition:
        """Create a new alert definition."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO user_alerts (user_id, coin_id, alert_type, threshold_value, is_active)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                alert.user_id,
                alert.coin_id,
                AlertType(alert.alert_type).value,
                alert.threshold_value,
                1 if alert.is_active else 0,
            ),
        )
        self.db.connection.commit()
        alert.id = cursor.lastrowid
        return alert

    def get_by_id(self, alert_id: int) -> Optional[AlertDefinition]:
        """Get alert by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM user_alerts WHERE id = ?", (alert_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_alert(row)

    def get_active(self) -> list[AlertDefinition]:
        """Get every active alert across all users."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM user_alerts WHERE is_active = 1 ORDER BY id")
        return self._rows_to_alerts(cursor.fetchall())

    def get_user_alerts(self, user_id: str) -> list[AlertDefinition]:
        """Get all alerts for a user."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM user_alerts WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        return self._rows_to_alerts(cursor.fetchall())

    def set_active(self, alert_id: int, is_active: bool) -> None:
        """Enable or disable an alert."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE user_alerts SET is_active = ? WHERE id = ?",
            (1 if is_active else 0, alert_id),
        )
        self.db.connection.commit()

    def delete(self, alert_id: int) -> None:
        """Delete an alert."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM user_alerts WHERE id = ?", (alert_id,))
        self.db.connection.commit()

    def _rows_to_alerts(self, rows) -> list[AlertDefinition]:
        """Convert rows, skipping any whose alert type is unknown."""
        alerts = []
        for row in rows:
            try:
                alerts.append(self._row_to_alert(row))
            except ValueError as e:
                logger.warning(f"Skipping alert {row['id']}: {e}")
        return alerts

    def _row_to_alert(self, row) -> AlertDefinition:
        """Convert database row to AlertDefinition."""
        return AlertDefinition(
            id=row["id"],
            user_id=row["user_id"],
            coin_id=row["coin_id"],
            alert_type=AlertType(row["alert_type"]),
            threshold_value=row["threshold_value"],
            is_active=bool(row["is_active"]),
        )


class PreferenceRepository:
    """Read and write per-user notification preferences."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, user_id: str) -> Optional[NotificationPreference]:
        """Get a user's stored preferences, or None when never saved."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM notification_preferences WHERE user_id = ?",
            (user_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return NotificationPreference(
            snooze_enabled=bool(row["snooze_enabled"]),
            snooze_duration_hours=row["snooze_duration_hours"],
            email_alerts=bool(row["email_alerts"]),
            critical_only=bool(row["critical_only"]),
            important_and_critical=bool(row["important_and_critical"]),
            all_notifications=bool(row["all_notifications"]),
            batch_portfolio_alerts=bool(row["batch_portfolio_alerts"]),
            max_notifications_per_hour=row["max_notifications_per_hour"],
        )

    def upsert(self, user_id: str, prefs: NotificationPreference) -> None:
        """Insert or replace a user's preferences."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO notification_preferences (
                user_id, snooze_enabled, snooze_duration_hours, email_alerts,
                critical_only, important_and_critical, all_notifications,
                batch_portfolio_alerts, max_notifications_per_hour
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                snooze_enabled = excluded.snooze_enabled,
                snooze_duration_hours = excluded.snooze_duration_hours,
                email_alerts = excluded.email_alerts,
                critical_only = excluded.critical_only,
                important_and_critical = excluded.important_and_critical,
                all_notifications = excluded.all_notifications,
                batch_portfolio_alerts = excluded.batch_portfolio_alerts,
                max_notifications_per_hour = excluded.max_notifications_per_hour
            """,
            (
                user_id,
                int(prefs.snooze_enabled),
                prefs.snooze_duration_hours,
                int(prefs.email_alerts),
                int(prefs.critical_only),
                int(prefs.important_and_critical),
                int(prefs.all_notifications),
                int(prefs.batch_portfolio_alerts),
                prefs.max_notifications_per_hour,
            ),
        )
        self.db.connection.commit()


class NotificationLogRepository:
    """Append-only access to the notification log."""

    def __init__(self, db: Database):
        self.db = db

    def append(self, entry: NotificationLogEntry) -> NotificationLogEntry:
        """Record a delivered notification."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO notification_log
            (user_id, coin_id, alert_type, message, delivery_status, sent_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.user_id,
                entry.coin_id,
                entry.alert_type,
                entry.message,
                entry.delivery_status,
                format_timestamp(entry.sent_at),
            ),
        )
        self.db.connection.commit()
        entry.id = cursor.lastrowid
        return entry

    def latest_for(
        self,
        user_id: str,
        coin_id: str,
        alert_type: str,
        since: Optional[datetime] = None,
    ) -> Optional[NotificationLogEntry]:
        """Most recent entry for a (user, coin, alert type) triple."""
        query = """
            SELECT * FROM notification_log
            WHERE user_id = ? AND coin_id = ? AND alert_type = ?
        """
        params: list = [user_id, coin_id, alert_type]
        if since is not None:
            query += " AND sent_at >= ?"
            params.append(format_timestamp(since))
        query += " ORDER BY sent_at DESC LIMIT 1"

        cursor = self.db.connection.cursor()
        cursor.execute(query, params)
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def count_since(self, since: datetime, user_id: Optional[str] = None) -> int:
        """Count entries sent at or after `since`, optionally for one user."""
        query = "SELECT COUNT(*) FROM notification_log WHERE sent_at >= ?"
        params: list = [format_timestamp(since)]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)

        cursor = self.db.connection.cursor()
        cursor.execute(query, params)
        return cursor.fetchone()[0]

    def list_for_user(self, user_id: str, limit: int = 50) -> list[NotificationLogEntry]:
        """Recent log entries for a user, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM notification_log
            WHERE user_id = ?
            ORDER BY sent_at DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [self._row_to_entry(row) for row in cursor.fetchall()]

    def _row_to_entry(self, row) -> NotificationLogEntry:
        """Convert database row to NotificationLogEntry."""
        return NotificationLogEntry(
            id=row["id"],
            user_id=row["user_id"],
            coin_id=row["coin_id"],
            alert_type=row["alert_type"],
            message=row["message"],
            delivery_status=row["delivery_status"],
            sent_at=parse_timestamp(row["sent_at"]),
        )


class CoinReportRepository:
    """Community migration/delisting reports."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, report: CoinReport) -> CoinReport:
        """File a new report."""
        created_at = report.created_at or utcnow()
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO coin_reports
            (coin_id, alert_type, status, archived, proof_link, created_at, verified_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                report.coin_id,
                AlertType(report.alert_type).value,
                ReportStatus(report.status).value,
                int(report.archived),
                report.proof_link,
                format_timestamp(created_at),
                format_timestamp(report.verified_at) if report.verified_at else None,
            ),
        )
        self.db.connection.commit()
        report.id = cursor.lastrowid
        report.created_at = created_at
        return report

    def verify(self, report_id: int, verified_at: Optional[datetime] = None) -> None:
        """Mark a report as verified by the community."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE coin_reports SET status = ?, verified_at = ? WHERE id = ?",
            (
                ReportStatus.VERIFIED.value,
                format_timestamp(verified_at or utcnow()),
                report_id,
            ),
        )
        self.db.connection.commit()

    def archive(self, report_id: int) -> None:
        """Archive a report so it no longer triggers alerts."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE coin_reports SET archived = 1 WHERE id = ?",
            (report_id,),
        )
        self.db.connection.commit()

    def has_verified(
        self,
        coin_id: str,
        alert_type: str,
        window_days: Optional[int] = None,
    ) -> bool:
        """Check for a verified, non-archived report, optionally within a window."""
        query = """
            SELECT 1 FROM coin_reports
            WHERE coin_id = ?
              AND alert_type = ?
              AND status = ?
              AND archived = 0
        """
        params: list = [coin_id, alert_type, ReportStatus.VERIFIED.value]
        if window_days is not None:
            cutoff = utcnow() - timedelta(days=window_days)
            query += " AND verified_at >= ?"
            params.append(format_timestamp(cutoff))
        query += " LIMIT 1"

        cursor = self.db.connection.cursor()
        cursor.execute(query, params)
        return cursor.fetchone() is not None

    def list_for_coin(self, coin_id: str) -> list[CoinReport]:
        """All reports filed against a coin."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM coin_reports WHERE coin_id = ? ORDER BY id",
            (coin_id,),
        )
        return [self._row_to_report(row) for row in cursor.fetchall()]

    def _row_to_report(self, row) -> CoinReport:
        """Convert database row to CoinReport."""
        return CoinReport(
            id=row["id"],
            coin_id=row["coin_id"],
            alert_type=AlertType(row["alert_type"]),
            status=ReportStatus(row["status"]),
            archived=bool(row["archived"]),
            proof_link=row["proof_link"],
            created_at=parse_timestamp(row["created_at"]),
            verified_at=parse_timestamp(row["verified_at"]),
        )


class ActivityRepository:
    """Daily developer/social activity samples per coin."""

    def __init__(self, db: Database):
        self.db = db

    def add(self, sample: ActivitySample) -> None:
        """Record a sample; the first sample for a (coin, date) wins."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT OR IGNORE INTO coin_activity
            (coin_id, date, developer_last_update, social_first_post_date)
            VALUES (?, ?, ?, ?)
            """,
            (
                sample.coin_id,
                format_timestamp(sample.date),
                self._optional(sample.developer_last_update),
                self._optional(sample.social_first_post_date),
            ),
        )
        self.db.connection.commit()

    def samples_since(self, coin_id: str, since: datetime) -> list[ActivitySample]:
        """Samples for a coin observed on or after `since`, oldest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM coin_activity
            WHERE coin_id = ? AND date >= ?
            ORDER BY date
            """,
            (coin_id, format_timestamp(since)),
        )
        return [
            ActivitySample(
                coin_id=row["coin_id"],
                date=parse_timestamp(row["date"]),
                developer_last_update=parse_timestamp(row["developer_last_update"]),
                social_first_post_date=parse_timestamp(row["social_first_post_date"]),
            )
            for row in cursor.fetchall()
        ]

    @staticmethod
    def _optional(value: Optional[datetime]) -> Optional[str]:
        return format_timestamp(value) if value else None
