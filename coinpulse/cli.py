"""
CLI commands for CoinPulse.
"""

import argparse
import dataclasses
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from coinpulse.config import AppConfig, load_config
from coinpulse.data.fetcher import CoinFeedFetcher
from coinpulse.database.connection import Database
from coinpulse.database.models import (
    USER_ALERT_TYPES,
    ActivitySample,
    AlertDefinition,
    AlertType,
    CoinReport,
    NotificationPreference,
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
from coinpulse.scoring.market import MarketAnalysis, analyze_market
from coinpulse.timeutil import parse_timestamp, utcnow

LEVELS = ("critical_only", "important_and_critical", "all_notifications")


def add_user(db: Database, user_id: str, email: Optional[str] = None) -> User:
    """Add a new user."""
    return UserRepository(db).create(User(id=user_id, email=email))


def add_alert(
    db: Database,
    user_id: str,
    coin_id: str,
    alert_type: str,
    threshold: float,
) -> AlertDefinition:
    """Create an active alert for a user."""
    if UserRepository(db).get_by_id(user_id) is None:
        raise ValueError(f"Unknown user: {user_id}")

    alert = AlertDefinition(
        user_id=user_id,
        coin_id=coin_id,
        alert_type=AlertType(alert_type),
        threshold_value=threshold,
    )
    return AlertRepository(db).create(alert)


def update_preferences(
    db: Database,
    user_id: str,
    level: Optional[str] = None,
    email_alerts: Optional[bool] = None,
    snooze_hours: Optional[float] = None,
    batch: Optional[bool] = None,
    max_per_hour: Optional[int] = None,
    defaults: Optional[NotificationPreference] = None,
) -> NotificationPreference:
    """
    Change a user's notification preferences, keeping unspecified values.

    Users without saved preferences start from a copy of `defaults`.
    """
    repo = PreferenceRepository(db)
    prefs = repo.get(user_id) or dataclasses.replace(defaults or NotificationPreference())

    if level is not None:
        if level not in LEVELS:
            raise ValueError(f"Unknown notification level: {level}")
        prefs.critical_only = level == "critical_only"
        prefs.important_and_critical = level == "important_and_critical"
        prefs.all_notifications = level == "all_notifications"
    if email_alerts is not None:
        prefs.email_alerts = email_alerts
    if snooze_hours is not None:
        prefs.snooze_enabled = snooze_hours > 0
        if snooze_hours > 0:
            prefs.snooze_duration_hours = snooze_hours
    if batch is not None:
        prefs.batch_portfolio_alerts = batch
    if max_per_hour is not None:
        prefs.max_notifications_per_hour = max_per_hour

    repo.upsert(user_id, prefs)
    return prefs


def record_activity(
    db: Database,
    coin_id: str,
    developer_update: Optional[str] = None,
    social_post: Optional[str] = None,
    date: Optional[str] = None,
) -> ActivitySample:
    """Store one activity sample for a coin."""
    sample = ActivitySample(
        coin_id=coin_id,
        date=parse_timestamp(date) or utcnow(),
        developer_last_update=parse_timestamp(developer_update),
        social_first_post_date=parse_timestamp(social_post),
    )
    ActivityRepository(db).add(sample)
    return sample


def show_preferences(
    db: Database, user_id: str, defaults: NotificationPreference
) -> list[str]:
    """Render the preferences that apply to a user as printable lines."""
    prefs = PreferenceRepository(db).get(user_id)
    lines = []
    if prefs is None:
        lines.append("No saved preferences, defaults apply")
        prefs = defaults
    lines.extend(f"{name}: {value}" for name, value in vars(prefs).items())
    return lines


def run_analysis(config: AppConfig, feed_url: Optional[str] = None) -> MarketAnalysis:
    """Fetch the coin universe and analyze it with the configured scoring."""
    source = config.data_source
    if feed_url:
        source = dataclasses.replace(source, feed_url=feed_url)
    fetcher = CoinFeedFetcher.from_config(source)
    return analyze_market(fetcher.get_universe(), config.scoring)


def format_analysis(analysis: MarketAnalysis, top: int = 10) -> list[str]:
    """Render a market analysis as printable lines."""
    if analysis.coins.empty:
        return ["No coins to analyze"]

    lines = [f"Top {top} coins by composite score:"]
    ranked = analysis.coins.sort_values("composite_score", ascending=False).head(top)
    for row in ranked.itertuples(index=False):
        lines.append(
            f"  {row.symbol:<8} {row.composite_score:6.1f}  "
            f"health {row.health_score:5.1f}  {row.cap_category}"
        )

    for category, metrics in analysis.cap_leaders.items():
        lines.append(f"{category} leaders:")
        for leader in metrics.values():
            lines.append(
                f"  {leader['metric_name']}: {leader['symbol']} "
                f"({leader['normalized_value']:.1f})"
            )

    for indicator in analysis.risk_indicators:
        lines.append(f"{indicator['title']}: {indicator['description']}")
        for coin in indicator["coins"]:
            lines.append(f"  {coin['symbol']}: {coin['reason']}")

    return lines


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="CoinPulse CLI")
    parser.add_argument("--config", help="Path to config file")
    parser.add_argument("--db", help="Database path (defaults to the configured path)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # User commands
    user_parser = subparsers.add_parser("user", help="User management")
    user_subparsers = user_parser.add_subparsers(dest="action")

    add_user_parser = user_subparsers.add_parser("add", help="Add user")
    add_user_parser.add_argument("--id", required=True, help="User ID")
    add_user_parser.add_argument("--email", help="User email")

    user_subparsers.add_parser("list", help="List users")

    # Alert commands
    alert_parser = subparsers.add_parser("alerts", help="Alert management")
    alert_subparsers = alert_parser.add_subparsers(dest="action")

    add_alert_parser = alert_subparsers.add_parser("add", help="Add alert")
    add_alert_parser.add_argument("--user", required=True, help="User ID")
    add_alert_parser.add_argument("--coin", required=True, help="Coin ID (e.g., bitcoin)")
    add_alert_parser.add_argument(
        "--type", required=True, choices=[t.value for t in USER_ALERT_TYPES]
    )
    add_alert_parser.add_argument(
        "--threshold", type=float, default=0.0, help="Threshold value"
    )

    list_alert_parser = alert_subparsers.add_parser("list", help="List user alerts")
    list_alert_parser.add_argument("--user", required=True, help="User ID")

    for action in ("enable", "disable", "delete"):
        action_parser = alert_subparsers.add_parser(action, help=f"{action.title()} alert")
        action_parser.add_argument("--id", type=int, required=True, help="Alert ID")

    # Preference commands
    prefs_parser = subparsers.add_parser("prefs", help="Notification preferences")
    prefs_subparsers = prefs_parser.add_subparsers(dest="action")

    show_prefs_parser = prefs_subparsers.add_parser("show", help="Show preferences")
    show_prefs_parser.add_argument("--user", required=True, help="User ID")

    set_prefs_parser = prefs_subparsers.add_parser("set", help="Update preferences")
    set_prefs_parser.add_argument("--user", required=True, help="User ID")
    set_prefs_parser.add_argument("--level", choices=LEVELS)
    set_prefs_parser.add_argument(
        "--email-alerts", action=argparse.BooleanOptionalAction, default=None
    )
    set_prefs_parser.add_argument(
        "--snooze-hours", type=float, help="Snooze duration; 0 disables snooze"
    )
    set_prefs_parser.add_argument(
        "--batch", action=argparse.BooleanOptionalAction, default=None
    )
    set_prefs_parser.add_argument("--max-per-hour", type=int)

    # Community report commands
    report_parser = subparsers.add_parser("reports", help="Community reports")
    report_subparsers = report_parser.add_subparsers(dest="action")

    add_report_parser = report_subparsers.add_parser("add", help="File report")
    add_report_parser.add_argument("--coin", required=True, help="Coin ID")
    add_report_parser.add_argument(
        "--type",
        required=True,
        choices=[AlertType.MIGRATION.value, AlertType.DELISTING.value],
    )
    add_report_parser.add_argument("--proof", help="Link to proof")

    for action in ("verify", "archive"):
        action_parser = report_subparsers.add_parser(action, help=f"{action.title()} report")
        action_parser.add_argument("--id", type=int, required=True, help="Report ID")

    list_report_parser = report_subparsers.add_parser("list", help="List reports")
    list_report_parser.add_argument("--coin", required=True, help="Coin ID")

    # Activity commands
    activity_parser = subparsers.add_parser("activity", help="Record activity sample")
    activity_parser.add_argument("--coin", required=True, help="Coin ID")
    activity_parser.add_argument("--developer-update", help="Last developer update (ISO)")
    activity_parser.add_argument("--social-post", help="Latest social post date (ISO)")
    activity_parser.add_argument("--date", help="Sample date (ISO), defaults to now")

    # Log commands
    log_parser = subparsers.add_parser("log", help="Show notification log")
    log_parser.add_argument("--user", required=True, help="User ID")
    log_parser.add_argument("--limit", type=int, default=20)

    # Market analysis
    analyze_parser = subparsers.add_parser("analyze", help="Analyze the coin market")
    analyze_parser.add_argument("--feed-url", help="Coin feed URL (overrides config)")
    analyze_parser.add_argument("--top", type=int, default=10)

    args = parser.parse_args()
    config = load_config(args.config) if args.config else AppConfig()

    # Initialize database
    db = Database(args.db or config.database.path)
    db.initialize()

    # Handle commands
    if args.command == "user":
        if args.action == "add":
            user = add_user(db, args.id, email=args.email)
            print(f"Created user with ID: {user.id}")
        elif args.action == "list":
            repo = UserRepository(db)
            for user in repo.list_all():
                print(f"ID: {user.id}, Email: {user.email}")

    elif args.command == "alerts":
        repo = AlertRepository(db)
        if args.action == "add":
            alert = add_alert(db, args.user, args.coin, args.type, args.threshold)
            print(f"Created alert with ID: {alert.id}")
        elif args.action == "list":
            for alert in repo.get_user_alerts(args.user):
                status = "active" if alert.is_active else "inactive"
                print(
                    f"{alert.id}: {alert.coin_id} {alert.alert_type.value} "
                    f"{alert.threshold_value:g} ({status})"
                )
        elif args.action in ("enable", "disable"):
            repo.set_active(args.id, args.action == "enable")
            print(f"Alert {args.id} {args.action}d")
        elif args.action == "delete":
            repo.delete(args.id)
            print(f"Alert {args.id} deleted")

    elif args.command == "prefs":
        if args.action == "show":
            for line in show_preferences(db, args.user, config.preferences):
                print(line)
        elif args.action == "set":
            update_preferences(
                db,
                args.user,
                level=args.level,
                email_alerts=args.email_alerts,
                snooze_hours=args.snooze_hours,
                batch=args.batch,
                max_per_hour=args.max_per_hour,
                defaults=config.preferences,
            )
            print(f"Preferences saved for {args.user}")

    elif args.command == "reports":
        repo = CoinReportRepository(db)
        if args.action == "add":
            report = repo.create(
                CoinReport(
                    coin_id=args.coin,
                    alert_type=AlertType(args.type),
                    proof_link=args.proof,
                )
            )
            print(f"Created report with ID: {report.id}")
        elif args.action == "verify":
            repo.verify(args.id)
            print(f"Report {args.id} verified")
        elif args.action == "archive":
            repo.archive(args.id)
            print(f"Report {args.id} archived")
        elif args.action == "list":
            for report in repo.list_for_coin(args.coin):
                archived = " (archived)" if report.archived else ""
                print(
                    f"{report.id}: {report.alert_type.value} {report.status.value}{archived}"
                )

    elif args.command == "activity":
        sample = record_activity(
            db,
            args.coin,
            developer_update=args.developer_update,
            social_post=args.social_post,
            date=args.date,
        )
        print(f"Recorded activity for {sample.coin_id} at {sample.date.isoformat()}")

    elif args.command == "log":
        for entry in NotificationLogRepository(db).list_for_user(args.user, args.limit):
            print(f"{entry.sent_at.isoformat()} [{entry.alert_type}] {entry.message}")

    elif args.command == "analyze":
        analysis = run_analysis(config, feed_url=args.feed_url)
        for line in format_analysis(analysis, top=args.top):
            print(line)

    db.close()


if __name__ == "__main__":
    main()
