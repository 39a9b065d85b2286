"""
Health score: a 0-100 view of a coin's trading, social and developer activity.
"""

import logging
import math
from datetime import datetime
from typing import Any, Optional

from coinpulse.config import HealthWeights
from coinpulse.database.models import CoinSnapshot
from coinpulse.timeutil import utcnow

logger = logging.getLogger(__name__)


def safe_number(value: Any, fallback: float = 0.0) -> float:
    """Coerce feed values to a finite float, substituting `fallback`."""
    if value is None or value == "":
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if math.isnan(number) or math.isinf(number):
        return fallback
    return number


def _recency_factor(
    last_activity: Optional[datetime],
    now: datetime,
    staleness_days: float,
    floor: float,
) -> float:
    """Scale in [floor, 1] that decays as activity gets older."""
    if last_activity is None:
        return floor
    days = max(0.0, (now - last_activity).total_seconds() / 86400)
    freshness = max(0.0, 1 - days / staleness_days)
    return floor + (1 - floor) * freshness


def calculate_health_score(
    coin: CoinSnapshot,
    weights: Optional[HealthWeights] = None,
    now: Optional[datetime] = None,
) -> float:
    """
    Compute a coin's health score.

    Developer points come from stars and forks, social points from followers,
    both on a log scale and damped by how stale the latest activity is. Market
    points reward liquidity (volume relative to market cap) and size.

    Returns:
        Score between 1 and 100
    """
    weights = weights or HealthWeights()
    now = now or utcnow()

    stars = max(0.0, safe_number(coin.developer_stars))
    forks = max(0.0, safe_number(coin.developer_forks))
    followers = max(0.0, safe_number(coin.social_followers))
    volume = max(0.0, safe_number(coin.volume_24h))
    market_cap = max(0.0, safe_number(coin.market_cap))

    developer = min(weights.stars_points, math.log10(stars + 1) * weights.stars_log_scale)
    developer += min(weights.forks_points, math.log10(forks + 1) * weights.forks_log_scale)
    developer *= _recency_factor(
        coin.developer_last_update,
        now,
        weights.developer_staleness_days,
        weights.recency_floor,
    )

    social = min(
        weights.followers_points,
        math.log10(followers + 1) * weights.followers_log_scale,
    )
    social *= _recency_factor(
        coin.social_first_post_date,
        now,
        weights.social_staleness_days,
        weights.recency_floor,
    )

    market = 0.0
    if volume > 0 and market_cap > 0:
        market += min(weights.liquidity_points, volume / market_cap * weights.liquidity_scale)
    if market_cap > 0:
        size = math.log10(market_cap) - weights.market_cap_log_offset
        market += max(0.0, min(weights.market_cap_points, size))

    score = developer + social + market
    return float(max(1, min(100, round(score))))


def resolve_health_score(
    coin: CoinSnapshot,
    weights: Optional[HealthWeights] = None,
    now: Optional[datetime] = None,
) -> float:
    """Use the feed's precomputed health score when present, else compute one."""
    if coin.health_score is not None:
        return safe_number(coin.health_score)
    score = calculate_health_score(coin, weights, now)
    logger.debug(f"Computed health score {score} for {coin.symbol}")
    return score
