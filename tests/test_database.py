"""
Database layer tests.
Tests for SQLite connection, schema creation, and repositories.
"""

import sqlite3
from datetime import timedelta
from pathlib import Path

import pytest

from coinpulse.database.connection import Database
from coinpulse.database.models import (
    ActivitySample,
    AlertDefinition,
    AlertType,
    CoinReport,
    NotificationLogEntry,
    NotificationPreference,
    ReportStatus,
    User,
)
from coinpulse.database.repository import (
    ActivityRepository,
    AlertRepository,
    CoinReportRepository,
    NotificationLogRepository,
    PreferenceRepository,
    UserRepository,
)
from coinpulse.timeutil import utcnow


class TestDatabaseConnection:
    """Test database connection and initialization."""

    def test_create_in_memory_database(self):
        """Should create an in-memory SQLite database."""
        db = Database(":memory:")
        assert db.connection is not None

    def test_create_file_database(self, tmp_path: Path):
        """Should create a file-based SQLite database and its directory."""
        db_path = tmp_path / "nested" / "test.db"
        Database(str(db_path))
        assert db_path.exists()

    def test_initialize_schema(self, db: Database):
        """Should create all required tables on initialization."""
        cursor = db.connection.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in cursor.fetchall()}

        expected_tables = {
            "users",
            "user_alerts",
            "notification_preferences",
            "notification_log",
            "coin_reports",
            "coin_activity",
        }
        assert expected_tables.issubset(tables)

    def test_initialize_is_idempotent(self, db: Database):
        """Should allow initializing an existing schema again."""
        db.initialize()

    def test_close_connection(self):
        """Should properly close database connection."""
        db = Database(":memory:")
        db.close()
        with pytest.raises(sqlite3.ProgrammingError):
            db.connection.execute("SELECT 1")


class TestUserRepository:
    """Test User CRUD operations."""

    @pytest.fixture
    def repo(self, db):
        return UserRepository(db)

    def test_create_and_get_user(self, repo: UserRepository):
        """Should store a user under its ID."""
        repo.create(User(id="u1", email="u1@example.com"))

        found = repo.get_by_id("u1")
        assert found is not None
        assert found.email == "u1@example.com"
        assert found.created_at is not None

    def test_get_nonexistent_user(self, repo: UserRepository):
        """Should return None for an unknown ID."""
        assert repo.get_by_id("missing") is None

    def test_list_all_users(self, repo: UserRepository):
        """Should list users ordered by ID."""
        repo.create(User(id="b"))
        repo.create(User(id="a"))

        assert [u.id for u in repo.list_all()] == ["a", "b"]


class TestAlertRepository:
    """Test alert definitions."""

    @pytest.fixture
    def repo(self, db):
        UserRepository(db).create(User(id="u1"))
        return AlertRepository(db)

    def test_create_alert(self, repo: AlertRepository):
        """Should assign an ID and keep the alert type."""
        alert = repo.create(
            AlertDefinition(
                user_id="u1",
                coin_id="bitcoin",
                alert_type=AlertType.PRICE_DROP,
                threshold_value=5,
            )
        )
        assert alert.id is not None

        found = repo.get_by_id(alert.id)
        assert found.alert_type is AlertType.PRICE_DROP
        assert found.threshold_value == 5
        assert found.is_active is True

    def test_get_active_excludes_disabled(self, repo: AlertRepository):
        """Should only return active alerts."""
        active = repo.create(AlertDefinition("u1", "bitcoin", AlertType.PRICE_DROP, 5))
        disabled = repo.create(AlertDefinition("u1", "ethereum", AlertType.PRICE_DROP, 5))
        repo.set_active(disabled.id, False)

        assert [a.id for a in repo.get_active()] == [active.id]

    def test_get_active_skips_unknown_type(self, repo: AlertRepository, db: Database):
        """Should skip rows whose alert type is not recognized."""
        db.connection.execute(
            "INSERT INTO user_alerts (user_id, coin_id, alert_type, threshold_value) "
            "VALUES ('u1', 'bitcoin', 'volume_spike', 5)"
        )
        db.connection.commit()
        valid = repo.create(AlertDefinition("u1", "bitcoin", AlertType.PRICE_DROP, 5))

        assert [a.id for a in repo.get_active()] == [valid.id]
        assert [a.id for a in repo.get_user_alerts("u1")] == [valid.id]

    def test_get_user_alerts_includes_inactive(self, repo: AlertRepository):
        """Should list all of a user's alerts."""
        alert = repo.create(AlertDefinition("u1", "bitcoin", AlertType.DELISTING, 0))
        repo.set_active(alert.id, False)

        assert len(repo.get_user_alerts("u1")) == 1

    def test_delete_alert(self, repo: AlertRepository):
        """Should remove the alert."""
        alert = repo.create(AlertDefinition("u1", "bitcoin", AlertType.MIGRATION, 0))
        repo.delete(alert.id)

        assert repo.get_by_id(alert.id) is None

    def test_alert_requires_existing_user(self, repo: AlertRepository):
        """Should reject alerts for unknown users."""
        with pytest.raises(sqlite3.IntegrityError):
            repo.create(AlertDefinition("ghost", "bitcoin", AlertType.PRICE_DROP, 5))


class TestPreferenceRepository:
    """Test notification preferences."""

    @pytest.fixture
    def repo(self, db):
        UserRepository(db).create(User(id="u1"))
        return PreferenceRepository(db)

    def test_missing_preferences(self, repo: PreferenceRepository):
        """Should return None when the user never saved preferences."""
        assert repo.get("u1") is None

    def test_upsert_round_trip(self, repo: PreferenceRepository):
        """Should store and then replace preferences."""
        repo.upsert("u1", NotificationPreference(snooze_enabled=True, snooze_duration_hours=4))
        repo.upsert("u1", NotificationPreference(critical_only=True, max_notifications_per_hour=3))

        prefs = repo.get("u1")
        assert prefs.critical_only is True
        assert prefs.snooze_enabled is False
        assert prefs.max_notifications_per_hour == 3


class TestNotificationLogRepository:
    """Test the append-only notification log."""

    @pytest.fixture
    def repo(self, db):
        return NotificationLogRepository(db)

    def _entry(self, sent_at, user_id="u1", coin_id="bitcoin", alert_type="price_drop"):
        return NotificationLogEntry(
            user_id=user_id,
            coin_id=coin_id,
            alert_type=alert_type,
            message="BTC price dropped",
            sent_at=sent_at,
        )

    def test_append_assigns_id(self, repo: NotificationLogRepository):
        """Should assign an ID to appended entries."""
        entry = repo.append(self._entry(utcnow()))
        assert entry.id is not None

    def test_latest_for_triple(self, repo: NotificationLogRepository):
        """Should return the newest entry for the exact triple."""
        now = utcnow()
        repo.append(self._entry(now - timedelta(hours=3)))
        repo.append(self._entry(now - timedelta(minutes=10)))
        repo.append(self._entry(now, coin_id="ethereum"))

        latest = repo.latest_for("u1", "bitcoin", "price_drop")
        assert latest is not None
        assert abs((now - latest.sent_at) - timedelta(minutes=10)) < timedelta(seconds=1)
        assert latest.delivery_status == "sent"

    def test_latest_for_respects_since(self, repo: NotificationLogRepository):
        """Should ignore entries older than `since`."""
        now = utcnow()
        repo.append(self._entry(now - timedelta(hours=3)))

        assert repo.latest_for("u1", "bitcoin", "price_drop", since=now - timedelta(hours=2)) is None

    def test_count_since(self, repo: NotificationLogRepository):
        """Should count recent entries overall and per user."""
        now = utcnow()
        repo.append(self._entry(now - timedelta(minutes=5)))
        repo.append(self._entry(now - timedelta(minutes=20), user_id="u2"))
        repo.append(self._entry(now - timedelta(hours=2)))

        since = now - timedelta(hours=1)
        assert repo.count_since(since) == 2
        assert repo.count_since(since, user_id="u1") == 1

    def test_list_for_user_newest_first(self, repo: NotificationLogRepository):
        """Should list a user's entries newest first."""
        now = utcnow()
        repo.append(self._entry(now - timedelta(hours=1), coin_id="old"))
        repo.append(self._entry(now, coin_id="new"))

        assert [e.coin_id for e in repo.list_for_user("u1")] == ["new", "old"]


class TestCoinReportRepository:
    """Test community reports."""

    @pytest.fixture
    def repo(self, db):
        return CoinReportRepository(db)

    def test_pending_report_does_not_count(self, repo: CoinReportRepository):
        """Should only count verified reports."""
        repo.create(CoinReport(coin_id="luna", alert_type=AlertType.DELISTING))
        assert repo.has_verified("luna", "delisting") is False

    def test_verified_report_counts(self, repo: CoinReportRepository):
        """Should find a verified report for the coin and type."""
        report = repo.create(CoinReport(coin_id="luna", alert_type=AlertType.DELISTING))
        repo.verify(report.id)

        assert repo.has_verified("luna", "delisting") is True
        assert repo.has_verified("luna", "migration") is False
        assert repo.list_for_coin("luna")[0].status is ReportStatus.VERIFIED

    def test_archived_report_does_not_count(self, repo: CoinReportRepository):
        """Should ignore archived reports."""
        report = repo.create(CoinReport(coin_id="luna", alert_type=AlertType.MIGRATION))
        repo.verify(report.id)
        repo.archive(report.id)

        assert repo.has_verified("luna", "migration") is False

    def test_report_window(self, repo: CoinReportRepository):
        """Should ignore reports verified before the window."""
        report = repo.create(CoinReport(coin_id="luna", alert_type=AlertType.MIGRATION))
        repo.verify(report.id, verified_at=utcnow() - timedelta(days=45))

        assert repo.has_verified("luna", "migration", window_days=30) is False
        assert repo.has_verified("luna", "migration") is True


class TestActivityRepository:
    """Test activity samples."""

    @pytest.fixture
    def repo(self, db):
        return ActivityRepository(db)

    def test_samples_since(self, repo: ActivityRepository):
        """Should return samples in the window, oldest first."""
        now = utcnow()
        for days in (40, 10, 2):
            repo.add(
                ActivitySample(
                    coin_id="bitcoin",
                    date=now - timedelta(days=days),
                    developer_last_update=now - timedelta(days=days + 1),
                )
            )

        samples = repo.samples_since("bitcoin", now - timedelta(days=30))
        assert len(samples) == 2
        assert samples[0].date < samples[1].date
        assert samples[0].social_first_post_date is None

    def test_duplicate_date_ignored(self, repo: ActivityRepository):
        """Should keep the first sample for a coin and date."""
        now = utcnow()
        repo.add(ActivitySample(coin_id="bitcoin", date=now, developer_last_update=now))
        repo.add(ActivitySample(coin_id="bitcoin", date=now))

        samples = repo.samples_since("bitcoin", now - timedelta(days=1))
        assert len(samples) == 1
        assert samples[0].developer_last_update is not None
