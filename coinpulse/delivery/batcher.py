"""
Per-user delivery planning: market-event override, preference filtering,
hourly rate limiting and portfolio batching.
"""

import logging
from typing import Optional

from coinpulse.config import DeliveryConfig
from coinpulse.database.models import (
    AlertType,
    CandidateNotification,
    NotificationPreference,
)

logger = logging.getLogger(__name__)

# Lower rank is delivered first
PRIORITY_RANK = {
    AlertType.DELISTING: 1,
    AlertType.MIGRATION: 2,
    AlertType.HEALTH_SCORE: 3,
    AlertType.PRICE_DROP: 4,
    AlertType.CONSISTENCY_SCORE: 5,
}
UNRANKED = 999

CRITICAL_TYPES = {AlertType.MIGRATION, AlertType.DELISTING}
IMPORTANT_TYPES = CRITICAL_TYPES | {
    AlertType.HEALTH_SCORE,
    AlertType.PRICE_DROP,
    AlertType.CONSISTENCY_SCORE,
}
SCORE_TYPES = {AlertType.HEALTH_SCORE, AlertType.CONSISTENCY_SCORE}


def priority_key(candidate: CandidateNotification) -> tuple[int, float]:
    """Sort key: severity rank, then larger deviation from threshold first."""
    rank = PRIORITY_RANK.get(AlertType(candidate.alert_type), UNRANKED)
    return rank, -candidate.deviation


def prioritize(
    candidates: list[CandidateNotification], limit: int
) -> list[CandidateNotification]:
    """Return at most `limit` candidates, most important first."""
    if limit <= 0:
        return []
    return sorted(candidates, key=priority_key)[:limit]


def is_permitted(candidate: CandidateNotification, prefs: NotificationPreference) -> bool:
    """Check a candidate against the user's notification level."""
    alert_type = AlertType(candidate.alert_type)

    if prefs.critical_only:
        return alert_type in CRITICAL_TYPES
    if alert_type.is_summary:
        return True
    if prefs.important_and_critical:
        return alert_type in IMPORTANT_TYPES
    if prefs.all_notifications:
        return True
    return alert_type in IMPORTANT_TYPES


def build_market_summary(
    user_id: str, candidates: list[CandidateNotification]
) -> Optional[CandidateNotification]:
    """Collapse a user's alerts during a market-wide event into one summary."""
    if not candidates:
        return None

    coin_count = len({c.coin_id for c in candidates})
    price_drops = sum(1 for c in candidates if c.alert_type == AlertType.PRICE_DROP)
    health_issues = sum(1 for c in candidates if c.alert_type in SCORE_TYPES)

    details = []
    if price_drops:
        details.append(f"{price_drops} price drops")
    if health_issues:
        details.append(f"{health_issues} health issues")

    message = f"Market Event: {coin_count} of your coins affected"
    if details:
        message += f" ({', '.join(details)})"
    message += ". Check your portfolio for details."

    return CandidateNotification(
        user_id=user_id,
        coin_id="market_event",
        coin_name="Market Summary",
        coin_symbol="MARKET",
        alert_type=AlertType.MARKET_EVENT,
        current_value=coin_count,
        threshold_value=1,
        message=message,
    )


def build_portfolio_summary(
    user_id: str, candidates: list[CandidateNotification]
) -> CandidateNotification:
    """Collapse many alerts for one user into a portfolio summary."""
    coin_count = len({c.coin_id for c in candidates})
    critical = sum(1 for c in candidates if c.alert_type in CRITICAL_TYPES)
    price_drops = sum(1 for c in candidates if c.alert_type == AlertType.PRICE_DROP)
    score_issues = sum(1 for c in candidates if c.alert_type in SCORE_TYPES)

    details = []
    if critical:
        details.append(f"{critical} critical events")
    if price_drops:
        details.append(f"{price_drops} price drops")
    if score_issues:
        details.append(f"{score_issues} health/consistency issues")

    message = f"Portfolio Alert: {coin_count} coins triggered alerts"
    if details:
        message += f" ({', '.join(details)})"

    return CandidateNotification(
        user_id=user_id,
        coin_id="portfolio",
        coin_name="Portfolio Summary",
        coin_symbol="PORTFOLIO",
        alert_type=AlertType.PORTFOLIO_BATCH,
        current_value=coin_count,
        threshold_value=1,
        message=message,
    )


class DeliveryBatcher:
    """Turns a user's surviving candidates into the notifications to send."""

    def __init__(self, config: Optional[DeliveryConfig] = None):
        self.config = config or DeliveryConfig()

    def plan(
        self,
        user_id: str,
        candidates: list[CandidateNotification],
        prefs: NotificationPreference,
        sent_last_hour: int,
        market_wide: bool = False,
    ) -> list[CandidateNotification]:
        """
        Decide what to deliver to one user this cycle.

        Args:
            user_id: Recipient
            candidates: Candidates that passed the cooldown gate
            prefs: The user's notification preferences
            sent_last_hour: Log entries already sent to the user in the
                rate-limit window
            market_wide: Whether the cycle is a market-wide event

        Returns:
            Notifications to deliver, possibly empty
        """
        if not candidates:
            return []

        if market_wide:
            critical = [c for c in candidates if c.alert_type in CRITICAL_TYPES]
            if critical:
                logger.info(
                    f"Market event: sending only {len(critical)} critical alerts "
                    f"for user {user_id}"
                )
                candidates = critical
            else:
                summary = build_market_summary(user_id, candidates)
                logger.info(
                    f"Market event: summarizing {len(candidates)} alerts for user {user_id}"
                )
                candidates = [summary]

        permitted = [c for c in candidates if is_permitted(c, prefs)]
        if not permitted:
            logger.info(f"All notifications blocked by preferences for user {user_id}")
            return []

        hourly_limit = prefs.max_notifications_per_hour
        remaining = max(0, hourly_limit - sent_last_hour)
        if sent_last_hour >= hourly_limit:
            logger.info(
                f"Rate limit reached for user {user_id}: "
                f"{sent_last_hour}/{hourly_limit}"
            )
            permitted = prioritize(permitted, remaining)
            if not permitted:
                return []

        if len(permitted) >= self.config.batch_threshold and prefs.batch_portfolio_alerts:
            logger.info(
                f"Batched {len(permitted)} notifications into a portfolio summary "
                f"for user {user_id}"
            )
            return [build_portfolio_summary(user_id, permitted)]

        if len(permitted) > remaining:
            chosen = prioritize(permitted, remaining)
            logger.info(
                f"Prioritized {len(chosen)} of {len(permitted)} notifications "
                f"for user {user_id}"
            )
            return chosen

        return permitted
