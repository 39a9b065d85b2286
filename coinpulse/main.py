"""
Main application entry point.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv

load_dotenv()

from coinpulse.backend import SqliteBackend
from coinpulse.database.connection import Database
from coinpulse.monitor import NotificationMonitor
from coinpulse.timeutil import format_timestamp, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TriggerResponse:
    """HTTP-style result of a triggered monitoring cycle."""

    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


async def _run_trigger(monitor: NotificationMonitor, label: str) -> TriggerResponse:
    try:
        result = await monitor.run_cycle()
    except Exception as e:
        logger.error(f"{label} monitoring failed: {e}")
        return TriggerResponse(
            status_code=500,
            body={
                "success": False,
                "message": f"{label} monitoring failed",
                "error": str(e),
            },
        )

    if result.alerts_processed == 0:
        message = "No active alerts to process"
    else:
        message = f"{label} monitoring completed"

    return TriggerResponse(
        status_code=200,
        body={
            "success": True,
            "message": message,
            "timestamp": format_timestamp(utcnow()),
            "result": result.to_dict(),
        },
    )


async def run_scheduled_trigger(monitor: NotificationMonitor) -> TriggerResponse:
    """Run a cycle on behalf of the scheduler."""
    return await _run_trigger(monitor, "Scheduled")


async def run_manual_trigger(monitor: NotificationMonitor) -> TriggerResponse:
    """Run a cycle on demand, with the same contract as the scheduler."""
    return await _run_trigger(monitor, "Manual")


async def run_schedule(monitor: NotificationMonitor, interval_minutes: float) -> None:
    """Run scheduled cycles forever, `interval_minutes` apart."""
    while True:
        response = await run_scheduled_trigger(monitor)
        if response.ok:
            logger.info(response.body["message"])
        logger.debug(f"Next cycle in {interval_minutes} minutes")
        await asyncio.sleep(interval_minutes * 60)


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="CoinPulse Alert Monitor")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--once", action="store_true", help="Run a single cycle and print the result"
    )

    args = parser.parse_args()

    # Load config
    from coinpulse.config import load_config

    config = load_config(args.config)

    # Setup logging
    if args.debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, config.advanced.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    monitor = NotificationMonitor(SqliteBackend.from_config(config, db), config)

    try:
        if args.once:
            response = asyncio.run(run_manual_trigger(monitor))
            print(json.dumps(response.body, indent=2))
            raise SystemExit(0 if response.ok else 1)

        logger.info(
            f"Starting monitor, running every {config.schedule.interval_minutes} minutes"
        )
        asyncio.run(run_schedule(monitor, config.schedule.interval_minutes))
    except KeyboardInterrupt:
        logger.info("Monitor stopped")
    finally:
        db.close()


if __name__ == "__main__":
    main()
