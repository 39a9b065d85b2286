"""
Per (user, coin, alert type) cooldown gate backed by the notification log.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from coinpulse.backend import MonitorBackend
from coinpulse.config import CooldownConfig
from coinpulse.database.models import (
    AlertType,
    CandidateNotification,
    NotificationPreference,
)
from coinpulse.timeutil import utcnow

logger = logging.getLogger(__name__)

SNOOZABLE_TYPES = (AlertType.HEALTH_SCORE, AlertType.CONSISTENCY_SCORE)


class CooldownGate:
    """Suppresses candidates whose triple was notified within its cooldown."""

    def __init__(self, backend: MonitorBackend, cooldowns: Optional[CooldownConfig] = None):
        self.backend = backend
        self.cooldowns = cooldowns or CooldownConfig()

    def cooldown_for(
        self, alert_type: AlertType, prefs: NotificationPreference
    ) -> timedelta:
        """
        Resolve the cooldown window for an alert type.

        A user's snooze duration replaces the default for score alerts when
        snooze is enabled; every other case uses the per-type default.
        """
        alert_type = AlertType(alert_type)
        if prefs.snooze_enabled and alert_type in SNOOZABLE_TYPES:
            return timedelta(hours=prefs.snooze_duration_hours)
        return timedelta(hours=self.cooldowns.hours_for(alert_type))

    async def allows(
        self,
        candidate: CandidateNotification,
        prefs: NotificationPreference,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Check whether a candidate may proceed.

        A failed log lookup lets the candidate through.
        """
        now = now or utcnow()
        cooldown = self.cooldown_for(candidate.alert_type, prefs)
        alert_type = AlertType(candidate.alert_type).value

        try:
            latest = await self.backend.fetch_latest_notification(
                candidate.user_id,
                candidate.coin_id,
                alert_type,
                since=now - cooldown,
            )
        except Exception as e:
            logger.warning(
                f"Could not check notification history for {candidate.coin_id} "
                f"{alert_type}: {e}"
            )
            return True

        if latest is None or latest.sent_at is None:
            return True

        elapsed = now - latest.sent_at
        if elapsed < cooldown:
            logger.info(
                f"Skipping {candidate.coin_id} {alert_type} for user {candidate.user_id}: "
                f"last sent {elapsed.total_seconds() / 3600:.1f}h ago "
                f"(cooldown {cooldown.total_seconds() / 3600:g}h)"
            )
            return False
        return True
