"""
Cross-sectional market analysis: composite ranking scores, market-cap
categories and risk indicators computed over the whole coin universe.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import numpy as np
import pandas as pd

from coinpulse.config import ScoringConfig
from coinpulse.database.models import CoinSnapshot
from coinpulse.scoring.health import resolve_health_score, safe_number
from coinpulse.timeutil import utcnow

logger = logging.getLogger(__name__)

LOW_CAP = "Low Cap"
MID_CAP = "Mid Cap"
HIGH_CAP = "High Cap"
CAP_CATEGORIES = (LOW_CAP, MID_CAP, HIGH_CAP)

# Days assumed when a coin never reported the activity date
MISSING_DATE_DAYS = 365
UNDERVALUATION_SCALE = 1e12

DEAD_COIN_HEALTH = 10
LOW_LIQUIDITY_RATIO = 0.001
LOW_LIQUIDITY_MIN_CAP = 1_000_000
STAGNANT_DAYS = 180
MAX_RISK_COINS = 5

COMPONENTS = ("social_momentum", "developer_activity", "undervaluation", "recency")


@dataclass
class MarketAnalysis:
    """Result of one analysis pass over the coin universe."""

    coins: pd.DataFrame
    cap_leaders: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    risk_indicators: list[dict[str, Any]] = field(default_factory=list)


def min_max_normalize(values: pd.Series) -> pd.Series:
    """
    Scale values to 0-100 relative to the valid (finite, non-negative) ones.

    Invalid values map to 0. When every valid value is equal the whole
    series maps to the neutral midpoint 50.
    """
    numeric = pd.to_numeric(values, errors="coerce").astype(float)
    valid = numeric.notna() & np.isfinite(numeric) & (numeric >= 0)
    if not valid.any():
        return pd.Series(0.0, index=values.index)

    low = numeric[valid].min()
    high = numeric[valid].max()
    if high == low:
        return pd.Series(50.0, index=values.index)

    scaled = (numeric - low) / (high - low) * 100
    return scaled.where(valid, 0.0)


def days_since(moment: Optional[datetime], now: datetime) -> int:
    """Whole days elapsed, rounded up and at least 1."""
    if moment is None:
        return MISSING_DATE_DAYS
    days = int(np.ceil((now - moment).total_seconds() / 86400))
    return max(1, days)


def _frame(universe: list[CoinSnapshot], config: ScoringConfig, now: datetime) -> pd.DataFrame:
    rows = []
    for coin in universe:
        market_cap = safe_number(coin.market_cap)
        if market_cap <= 0:
            continue
        days_first_post = days_since(coin.social_first_post_date, now)
        days_last_update = days_since(coin.developer_last_update, now)
        stars = max(0.0, safe_number(coin.developer_stars))
        forks = max(0.0, safe_number(coin.developer_forks))
        rows.append({
            "coin_id": coin.coin_id,
            "name": coin.name,
            "symbol": coin.symbol,
            "market_cap": market_cap,
            "volume_24h": max(0.0, safe_number(coin.volume_24h)),
            "developer_stars": stars,
            "days_since_first_post": days_first_post,
            "days_since_last_update": days_last_update,
            "social_momentum": max(0.0, safe_number(coin.social_followers)) / days_first_post,
            "developer_activity": (stars + forks) / days_last_update,
            "undervaluation": UNDERVALUATION_SCALE / market_cap,
            "recency": 1 / days_last_update,
            "health_score": resolve_health_score(coin, config.health, now),
        })
    return pd.DataFrame(rows)


def categorize_market_caps(
    market_caps: pd.Series,
    low_fraction: float,
    mid_fraction: float,
) -> pd.Series:
    """Bucket coins by their distance above the smallest cap in the universe."""
    low = market_caps.min()
    spread = market_caps.max() - low
    distance = market_caps - low
    return pd.Series(
        np.select(
            [distance <= spread * low_fraction, distance <= spread * mid_fraction],
            [LOW_CAP, MID_CAP],
            default=HIGH_CAP,
        ),
        index=market_caps.index,
    )


def compute_composite_scores(
    universe: list[CoinSnapshot],
    config: Optional[ScoringConfig] = None,
    now: Optional[datetime] = None,
) -> pd.DataFrame:
    """
    Score every coin relative to the rest of the universe.

    Each raw component is min-max normalized independently and the composite
    is their mean. Coins without a positive market cap are left out.

    Returns:
        DataFrame with one row per coin, including `composite_score` and
        `cap_category` columns
    """
    config = config or ScoringConfig()
    now = now or utcnow()
    coins = _frame(universe, config, now)
    if coins.empty:
        return coins

    for component in COMPONENTS:
        coins[f"normalized_{component}"] = min_max_normalize(coins[component])
    coins["composite_score"] = coins[[f"normalized_{c}" for c in COMPONENTS]].mean(axis=1)
    coins["cap_category"] = categorize_market_caps(
        coins["market_cap"], config.low_cap_fraction, config.mid_cap_fraction
    )
    return coins


def _cap_leaders(coins: pd.DataFrame) -> dict[str, dict[str, dict[str, Any]]]:
    metrics = {
        "social_momentum": ("normalized_social_momentum", "Social Momentum"),
        "developer_activity": ("normalized_developer_activity", "Developer Activity"),
        "composite_score": ("composite_score", "Composite Score"),
    }
    leaders: dict[str, dict[str, dict[str, Any]]] = {}
    for category in CAP_CATEGORIES:
        members = coins[coins["cap_category"] == category]
        if members.empty:
            continue
        leaders[category] = {}
        for metric, (normalized, label) in metrics.items():
            top = members.loc[members[metric].idxmax()]
            leaders[category][metric] = {
                "id": top["coin_id"],
                "name": top["name"],
                "symbol": top["symbol"],
                "raw_value": float(top[metric]),
                "normalized_value": float(top[normalized]),
                "metric_name": label,
            }
    return leaders


def _risk_indicators(coins: pd.DataFrame) -> list[dict[str, Any]]:
    indicators = []

    dead = coins[coins["health_score"] < DEAD_COIN_HEALTH]
    dead = dead.sort_values("health_score").head(MAX_RISK_COINS)
    if not dead.empty:
        indicators.append({
            "type": "dead_coins",
            "title": "Dead Coins Alert",
            "description": f"{len(dead)} coins with health scores below {DEAD_COIN_HEALTH}",
            "coins": [
                {
                    "name": row.name,
                    "symbol": row.symbol,
                    "score": f"{row.health_score:.1f}",
                    "reason": "Extremely low health score",
                }
                for row in dead.itertuples(index=False)
            ],
        })

    ratio = coins["volume_24h"] / coins["market_cap"]
    illiquid = coins.assign(liquidity_ratio=ratio)
    illiquid = illiquid[
        (illiquid["liquidity_ratio"] < LOW_LIQUIDITY_RATIO)
        & (illiquid["market_cap"] > LOW_LIQUIDITY_MIN_CAP)
    ]
    illiquid = illiquid.sort_values("liquidity_ratio").head(MAX_RISK_COINS)
    if not illiquid.empty:
        indicators.append({
            "type": "low_liquidity",
            "title": "Low Liquidity Warning",
            "description": f"{len(illiquid)} coins with extremely low trading volume",
            "coins": [
                {
                    "name": row.name,
                    "symbol": row.symbol,
                    "ratio": f"{row.liquidity_ratio * 100:.3f}",
                    "reason": "Daily volume < 0.1% of market cap",
                }
                for row in illiquid.itertuples(index=False)
            ],
        })

    stagnant = coins[
        (coins["days_since_last_update"] > STAGNANT_DAYS) & (coins["developer_stars"] > 0)
    ]
    stagnant = stagnant.sort_values("days_since_last_update", ascending=False)
    stagnant = stagnant.head(MAX_RISK_COINS)
    if not stagnant.empty:
        indicators.append({
            "type": "stagnant_development",
            "title": "Development Stagnation",
            "description": f"{len(stagnant)} coins with no developer activity for 6+ months",
            "coins": [
                {
                    "name": row.name,
                    "symbol": row.symbol,
                    "days": int(row.days_since_last_update),
                    "reason": f"No updates for {int(row.days_since_last_update) // 30} months",
                }
                for row in stagnant.itertuples(index=False)
            ],
        })

    return indicators


def analyze_market(
    universe: list[CoinSnapshot],
    config: Optional[ScoringConfig] = None,
    now: Optional[datetime] = None,
) -> MarketAnalysis:
    """Run composite scoring, cap-category leaders and risk indicators."""
    coins = compute_composite_scores(universe, config, now)
    if coins.empty:
        logger.info("No coins with a positive market cap to analyze")
        return MarketAnalysis(coins=coins)

    logger.info(f"Analyzed {len(coins)} coins")
    return MarketAnalysis(
        coins=coins,
        cap_leaders=_cap_leaders(coins),
        risk_indicators=_risk_indicators(coins),
    )
