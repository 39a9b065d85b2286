"""
Market-wide event detection over one cycle's candidate notifications.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from coinpulse.backend import MonitorBackend
from coinpulse.config import MarketEventConfig
from coinpulse.database.models import AlertType, CandidateNotification
from coinpulse.timeutil import utcnow

logger = logging.getLogger(__name__)


class MarketEventDetector:
    """Classifies a cycle as normal or as a market-wide alert storm."""

    def __init__(self, backend: MonitorBackend, config: Optional[MarketEventConfig] = None):
        self.backend = backend
        self.config = config or MarketEventConfig()

    def classify(self, candidates: list[CandidateNotification]) -> Optional[str]:
        """Apply the count rules; return the reason when one matches."""
        total = len(candidates)
        if total >= self.config.total_threshold:
            return f"{total} total notifications"

        price_drops = [c for c in candidates if c.alert_type == AlertType.PRICE_DROP]
        drop_coins = len({c.coin_id for c in price_drops})
        if (
            drop_coins >= self.config.price_drop_coins_threshold
            and len(price_drops) >= self.config.price_drop_count_threshold
        ):
            return f"{drop_coins} coins with {len(price_drops)} price drops"

        return None

    async def detect(
        self,
        candidates: list[CandidateNotification],
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Decide whether this cycle is a market-wide event.

        Falls back to notification velocity in the trailing window when the
        count rules do not match; a failed velocity query counts as not met.
        """
        reason = self.classify(candidates)

        if reason is None:
            now = now or utcnow()
            window = timedelta(minutes=self.config.velocity_window_minutes)
            try:
                recent = await self.backend.count_notifications_since(now - window)
            except Exception as e:
                logger.warning(f"Could not check notification velocity: {e}")
                recent = 0
            if recent >= self.config.velocity_threshold:
                reason = (
                    f"{recent} notifications in the last "
                    f"{self.config.velocity_window_minutes} minutes"
                )

        if reason is None:
            return False

        logger.warning(f"Market-wide event detected: {reason}")
        return True
