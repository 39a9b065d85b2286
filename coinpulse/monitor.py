"""
Monitoring cycle: evaluates every active alert and delivers what survives
cooldowns, market-event handling, preferences and rate limits.
"""

import asyncio
import dataclasses
import logging
from datetime import datetime, timedelta
from typing import Optional

from coinpulse.backend import MonitorBackend
from coinpulse.config import AppConfig
from coinpulse.database.models import (
    AlertDefinition,
    AlertType,
    CandidateNotification,
    CoinSnapshot,
    CycleResult,
    NotificationLogEntry,
    NotificationPreference,
)
from coinpulse.delivery.batcher import DeliveryBatcher
from coinpulse.delivery.cooldown import CooldownGate
from coinpulse.delivery.market_event import MarketEventDetector
from coinpulse.rules.engine import AlertEvaluator
from coinpulse.scoring.consistency import calculate_consistency_score
from coinpulse.scoring.health import resolve_health_score, safe_number
from coinpulse.timeutil import utcnow

logger = logging.getLogger(__name__)


class CycleFailedError(Exception):
    """Raised when a monitoring cycle cannot run at all."""

    pass


class NotificationMonitor:
    """Runs monitoring cycles against a backend."""

    def __init__(self, backend: MonitorBackend, config: Optional[AppConfig] = None):
        """
        Initialize the monitor.

        Args:
            backend: Storage, coin data and email collaborators
            config: Application configuration (defaults when omitted)
        """
        self.backend = backend
        self.config = config or AppConfig()

        self.evaluator = AlertEvaluator(backend)
        self.cooldown_gate = CooldownGate(backend, self.config.cooldowns)
        self.market_detector = MarketEventDetector(backend, self.config.market_event)
        self.batcher = DeliveryBatcher(self.config.delivery)

    async def run_cycle(self, now: Optional[datetime] = None) -> CycleResult:
        """
        Run one full monitoring cycle.

        Raises:
            CycleFailedError: If the active alerts cannot be fetched
        """
        now = now or utcnow()
        started = utcnow()

        try:
            alerts = await self.backend.fetch_active_alerts()
        except Exception as e:
            logger.error(f"Error fetching alerts: {e}")
            raise CycleFailedError(f"Failed to fetch alerts: {e}") from e

        result = CycleResult(alerts_processed=len(alerts))
        if not alerts:
            logger.info("No active alerts found")
            return result

        logger.info(f"Processing {len(alerts)} active alerts")

        alerts_by_coin: dict[str, list[AlertDefinition]] = {}
        for alert in alerts:
            alerts_by_coin.setdefault(alert.coin_id, []).append(alert)

        # Preferences are only cached for the duration of this cycle
        preferences: dict[str, NotificationPreference] = {}
        seen: set[tuple[str, str, str]] = set()
        candidates: list[CandidateNotification] = []

        coin_ids = list(alerts_by_coin)
        batch_size = self.config.schedule.batch_size
        batch_count = (len(coin_ids) + batch_size - 1) // batch_size

        for start in range(0, len(coin_ids), batch_size):
            if start:
                await asyncio.sleep(self.config.schedule.batch_delay_seconds)

            logger.debug(f"Processing batch {start // batch_size + 1}/{batch_count}")
            for coin_id in coin_ids[start:start + batch_size]:
                try:
                    candidates.extend(
                        await self._process_coin(
                            coin_id, alerts_by_coin[coin_id], preferences, seen, now
                        )
                    )
                except Exception as e:
                    logger.error(f"Error processing coin {coin_id}: {e}")

        result.notifications_triggered = len(candidates)
        result.details = [
            {
                "coin": c.coin_symbol,
                "type": AlertType(c.alert_type).value,
                "message": c.message,
            }
            for c in candidates
        ]
        logger.info(f"Found {len(candidates)} notifications to send")

        result.market_wide_event = await self.market_detector.detect(candidates, now)

        by_user: dict[str, list[CandidateNotification]] = {}
        for candidate in candidates:
            by_user.setdefault(candidate.user_id, []).append(candidate)

        for user_id, user_candidates in by_user.items():
            try:
                prefs = await self._preferences_for(user_id, preferences)
                result.notifications_sent += await self._deliver_to_user(
                    user_id,
                    user_candidates,
                    prefs,
                    result.market_wide_event,
                    now,
                    started,
                )
            except Exception as e:
                logger.error(f"Error delivering notifications to user {user_id}: {e}")

        logger.info(
            f"Cycle complete: {result.alerts_processed} alerts, "
            f"{result.notifications_triggered} triggered, "
            f"{result.notifications_sent} sent"
        )
        return result

    async def _process_coin(
        self,
        coin_id: str,
        alerts: list[AlertDefinition],
        preferences: dict[str, NotificationPreference],
        seen: set[tuple[str, str, str]],
        now: datetime,
    ) -> list[CandidateNotification]:
        """Evaluate all alerts on one coin and apply the cooldown gate."""
        try:
            coin = await self.backend.fetch_coin_snapshot(coin_id)
        except Exception as e:
            logger.warning(f"Failed to fetch coin data for {coin_id}: {e}")
            return []

        if coin is None:
            logger.warning(f"No coin data found for {coin_id}")
            return []

        coin = await self._attach_scores(coin, now)
        logger.debug(
            f"Processing {coin.symbol}: health={coin.health_score}, "
            f"consistency={coin.consistency_score}, change24h={coin.price_change_24h}%"
        )

        found = []
        for alert in alerts:
            try:
                key = (alert.user_id, alert.coin_id, AlertType(alert.alert_type).value)
                if key in seen:
                    logger.debug(f"Ignoring duplicate alert {alert.id} for {key}")
                    continue
                candidate = await self.evaluator.evaluate(alert, coin)
            except ValueError as e:
                logger.error(f"Skipping alert {alert.id}: {e}")
                continue
            if candidate is None:
                continue

            seen.add(key)
            prefs = await self._preferences_for(alert.user_id, preferences)
            if await self.cooldown_gate.allows(candidate, prefs, now):
                logger.info(f"Alert triggered: {candidate.message}")
                found.append(candidate)

        return found

    async def _attach_scores(self, snapshot: CoinSnapshot, now: datetime) -> CoinSnapshot:
        """Return a copy of the snapshot with health and consistency scores filled in."""
        scoring = self.config.scoring
        coin = dataclasses.replace(snapshot)
        coin.health_score = resolve_health_score(coin, scoring.health, now)

        if coin.consistency_score is not None:
            coin.consistency_score = safe_number(coin.consistency_score)
            return coin

        since = now - timedelta(days=scoring.consistency.lookback_days)
        try:
            samples = await self.backend.fetch_activity_samples(coin.coin_id, since)
        except Exception as e:
            logger.warning(f"Could not load activity samples for {coin.coin_id}: {e}")
            samples = []

        if samples:
            coin.consistency_score = calculate_consistency_score(
                samples, scoring.consistency, now
            ).consistency_score
        else:
            coin.consistency_score = scoring.neutral_score
        return coin

    async def _preferences_for(
        self, user_id: str, cache: dict[str, NotificationPreference]
    ) -> NotificationPreference:
        """Fetch a user's preferences once per cycle, falling back to defaults."""
        if user_id not in cache:
            try:
                cache[user_id] = await self.backend.fetch_user_preferences(user_id)
            except Exception as e:
                logger.warning(f"Could not load preferences for user {user_id}: {e}")
                cache[user_id] = self.config.preferences
        return cache[user_id]

    async def _deliver_to_user(
        self,
        user_id: str,
        candidates: list[CandidateNotification],
        prefs: NotificationPreference,
        market_wide: bool,
        now: datetime,
        started: datetime,
    ) -> int:
        """Plan and deliver one user's notifications; return how many were sent."""
        window = timedelta(minutes=self.config.delivery.rate_limit_window_minutes)
        try:
            sent_recently = await self.backend.count_notifications_since(
                now - window, user_id=user_id
            )
        except Exception as e:
            logger.warning(f"Could not check rate limit for user {user_id}: {e}")
            sent_recently = 0

        planned = self.batcher.plan(user_id, candidates, prefs, sent_recently, market_wide)
        if not planned:
            return 0

        email = None
        if prefs.email_alerts:
            try:
                email = await self.backend.fetch_user_email(user_id)
            except Exception as e:
                logger.warning(f"Could not look up email for user {user_id}: {e}")

        sent = 0
        for notification in planned:
            entry = NotificationLogEntry(
                user_id=user_id,
                coin_id=notification.coin_id,
                alert_type=AlertType(notification.alert_type).value,
                message=notification.message,
                # Cycle clock advanced by the time spent so far
                sent_at=now + (utcnow() - started),
            )
            try:
                await self.backend.append_notification_log(entry)
            except Exception as e:
                logger.error(
                    f"Failed to record notification for user {user_id} "
                    f"{notification.coin_id}: {e}"
                )
                continue

            sent += 1
            if email:
                try:
                    await self.backend.send_email(email, notification)
                except Exception as e:
                    logger.error(f"Email to user {user_id} failed: {e}")

        return sent
