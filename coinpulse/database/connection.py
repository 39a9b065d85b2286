"""
SQLite database connection and schema management.
"""

import sqlite3
from pathlib import Path
from typing import Optional


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        # The monitor hands blocking calls to worker threads
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        cursor = self.connection.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                coin_id TEXT NOT NULL,
                alert_type TEXT NOT NULL,
                threshold_value REAL NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notification_preferences (
                user_id TEXT PRIMARY KEY,
                snooze_enabled INTEGER NOT NULL,
                snooze_duration_hours REAL NOT NULL,
                email_alerts INTEGER NOT NULL,
                critical_only INTEGER NOT NULL,
                important_and_critical INTEGER NOT NULL,
                all_notifications INTEGER NOT NULL,
                batch_portfolio_alerts INTEGER NOT NULL,
                max_notifications_per_hour INTEGER NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        # Append-only: rows are never updated or deleted by the monitor
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notification_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                coin_id TEXT NOT NULL,
                alert_type TEXT NOT NULL,
                message TEXT NOT NULL,
                delivery_status TEXT NOT NULL DEFAULT 'sent',
                sent_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS coin_reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                coin_id TEXT NOT NULL,
                alert_type TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                archived INTEGER NOT NULL DEFAULT 0,
                proof_link TEXT,
                created_at TEXT NOT NULL,
                verified_at TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS coin_activity (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                coin_id TEXT NOT NULL,
                date TEXT NOT NULL,
                developer_last_update TEXT,
                social_first_post_date TEXT,
                UNIQUE (coin_id, date)
            )
        """)

        # Create indexes for common queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_alerts_active ON user_alerts(is_active, coin_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_log_triple
            ON notification_log(user_id, coin_id, alert_type, sent_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_log_sent_at ON notification_log(sent_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_reports_coin
            ON coin_reports(coin_id, alert_type, status)
        """)

        self.connection.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
