"""
Alert evaluation engine.
"""

import logging
from typing import Optional

from coinpulse.backend import MonitorBackend
from coinpulse.database.models import (
    AlertDefinition,
    AlertType,
    CandidateNotification,
    CoinSnapshot,
)

logger = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    return f"{value:g}"


class AlertEvaluator:
    """Decides whether an alert's condition holds for a coin's current data."""

    def __init__(self, backend: MonitorBackend):
        self.backend = backend

    async def evaluate(
        self, alert: AlertDefinition, coin: CoinSnapshot
    ) -> Optional[CandidateNotification]:
        """
        Evaluate one alert definition against a coin snapshot.

        The snapshot must already carry `health_score` and `consistency_score`.

        Args:
            alert: Active alert definition
            coin: Current snapshot of the alert's coin

        Returns:
            CandidateNotification when the condition is met, else None

        Raises:
            ValueError: If the alert type cannot be evaluated
        """
        alert_type = AlertType(alert.alert_type)
        threshold = alert.threshold_value

        if alert_type == AlertType.HEALTH_SCORE:
            current = coin.health_score or 0.0
            if current >= threshold:
                return None
            message = (
                f"{coin.symbol} health score dropped to {_fmt(current)} "
                f"(below {_fmt(threshold)})"
            )

        elif alert_type == AlertType.CONSISTENCY_SCORE:
            current = coin.consistency_score or 0.0
            if current >= threshold:
                return None
            message = (
                f"{coin.symbol} consistency score dropped to {_fmt(current)} "
                f"(below {_fmt(threshold)})"
            )

        elif alert_type == AlertType.PRICE_DROP:
            change = coin.price_change_24h or 0.0
            current = abs(change)
            if not (change < 0 and current > threshold):
                return None
            message = (
                f"{coin.symbol} price dropped {current:.2f}% "
                f"(alert set for >{_fmt(threshold)}%)"
            )

        elif alert_type in (AlertType.MIGRATION, AlertType.DELISTING):
            if not await self._has_verified_report(coin.coin_id, alert_type):
                return None
            current = 1.0
            message = f"{coin.symbol} {alert_type.value} alert verified by community"

        else:
            raise ValueError(f"Cannot evaluate alert type: {alert_type.value}")

        logger.debug(f"Alert {alert.id} triggered: {message}")
        return CandidateNotification(
            user_id=alert.user_id,
            coin_id=coin.coin_id,
            coin_name=coin.name,
            coin_symbol=coin.symbol,
            alert_type=alert_type,
            current_value=current,
            threshold_value=threshold,
            message=message,
        )

    async def _has_verified_report(self, coin_id: str, alert_type: AlertType) -> bool:
        """Look up a community report; lookup failures count as no report."""
        try:
            return await self.backend.fetch_verified_community_report(coin_id, alert_type)
        except Exception as e:
            logger.warning(
                f"Could not check {alert_type.value} reports for {coin_id}: {e}"
            )
            return False
