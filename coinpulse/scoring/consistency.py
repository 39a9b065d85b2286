"""
Consistency score: how regularly a coin's developers and community post updates.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from coinpulse.config import ConsistencyConfig
from coinpulse.database.models import ActivitySample
from coinpulse.timeutil import parse_timestamp, utcnow


@dataclass
class ConsistencyResult:
    """Consistency score with its per-channel components."""

    developer_frequency: int = 0
    social_frequency: int = 0
    developer_recency: float = 0.0
    social_recency: float = 0.0
    developer_score: float = 0.0
    social_score: float = 0.0
    consistency_score: float = 0.0


def _days_between(earlier: datetime, later: datetime) -> int:
    """Whole days between two instants, rounded up."""
    seconds = abs((later - earlier).total_seconds())
    return math.ceil(seconds / 86400)


def _channel_score(
    timestamps: set[datetime],
    now: datetime,
    freq_baseline: float,
    staleness_max: float,
    weight: float,
) -> tuple[int, float, float]:
    """Return (frequency, recency, score) for one activity channel."""
    frequency = len(timestamps)
    staleness = _days_between(max(timestamps), now) if timestamps else staleness_max

    normalized_frequency = min(1.0, frequency / freq_baseline)
    recency = max(0.0, 1 - staleness / staleness_max)
    score = weight * normalized_frequency + (1 - weight) * recency
    return frequency, recency, score


def calculate_consistency_score(
    samples: Iterable[ActivitySample],
    config: Optional[ConsistencyConfig] = None,
    now: Optional[datetime] = None,
) -> ConsistencyResult:
    """
    Score a coin's activity regularity over the lookback window.

    Each channel blends how many distinct activity timestamps were observed
    (frequency) with how long ago the latest one was (recency). Samples with
    unparseable dates are ignored; an empty window scores zero.

    Args:
        samples: Daily activity samples for one coin
        config: Scoring constants (defaults when omitted)
        now: Reference time (defaults to current UTC time)

    Returns:
        ConsistencyResult with a 0-100 score rounded to one decimal
    """
    config = config or ConsistencyConfig()
    now = now or utcnow()
    lookback = now - timedelta(days=config.lookback_days)

    developer_dates: set[datetime] = set()
    social_dates: set[datetime] = set()
    in_window = 0

    for sample in samples:
        sample_date = parse_timestamp(sample.date)
        if sample_date is None or sample_date < lookback:
            continue
        in_window += 1

        developer = parse_timestamp(sample.developer_last_update)
        if developer is not None:
            developer_dates.add(developer)

        social = parse_timestamp(sample.social_first_post_date)
        if social is not None:
            social_dates.add(social)

    if in_window == 0:
        return ConsistencyResult()

    dev_freq, dev_recency, dev_score = _channel_score(
        developer_dates,
        now,
        config.developer_freq_baseline,
        config.developer_staleness_max,
        config.developer_weight,
    )
    soc_freq, soc_recency, soc_score = _channel_score(
        social_dates,
        now,
        config.social_freq_baseline,
        config.social_staleness_max,
        config.social_weight,
    )

    blended = 100 * (
        config.global_blend * dev_score + (1 - config.global_blend) * soc_score
    )
    consistency = min(100.0, max(0.0, blended))

    return ConsistencyResult(
        developer_frequency=dev_freq,
        social_frequency=soc_freq,
        developer_recency=dev_recency,
        social_recency=soc_recency,
        developer_score=dev_score,
        social_score=soc_score,
        consistency_score=round(consistency, 1),
    )
