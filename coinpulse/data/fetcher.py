"""
JSON coin feed fetcher.
"""

import logging
import time
from typing import Any, Optional

import requests

from coinpulse.config import DataSourceConfig
from coinpulse.database.models import CoinSnapshot
from coinpulse.scoring.health import safe_number
from coinpulse.timeutil import parse_timestamp

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Raised when the coin feed cannot be downloaded or parsed."""

    pass


class CoinFeedFetcher:
    """Fetches coin snapshots from the published JSON coin feed."""

    def __init__(
        self,
        feed_url: str,
        timeout: float = 30,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        cache_seconds: float = 60,
    ):
        self.feed_url = feed_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.cache_seconds = cache_seconds
        self._cache: Optional[dict[str, CoinSnapshot]] = None
        self._cached_at = 0.0

    @classmethod
    def from_config(cls, source: DataSourceConfig) -> "CoinFeedFetcher":
        """Build a fetcher from the data_source configuration."""
        return cls(
            feed_url=source.feed_url,
            timeout=source.request_timeout_seconds,
            max_retries=source.max_retries,
            retry_delay=source.retry_delay_seconds,
        )

    def get_universe(self) -> list[CoinSnapshot]:
        """
        Fetch every coin in the feed.

        Returns:
            List of CoinSnapshot

        Raises:
            FeedError: If the feed is unreachable after all retries
        """
        return list(self._load().values())

    def get_snapshot(self, coin_id: str) -> Optional[CoinSnapshot]:
        """
        Fetch the current snapshot of one coin.

        Args:
            coin_id: Feed identifier (e.g., "bitcoin")

        Returns:
            CoinSnapshot, or None if the coin is not in the feed
        """
        return self._load().get(coin_id)

    def _load(self) -> dict[str, CoinSnapshot]:
        now = time.monotonic()
        if self._cache is not None and now - self._cached_at < self.cache_seconds:
            return self._cache

        rows = self._download()
        coins = {}
        for row in rows:
            snapshot = self.parse_coin(row)
            if snapshot is not None:
                coins[snapshot.coin_id] = snapshot

        self._cache = coins
        self._cached_at = now
        logger.info(f"Loaded {len(coins)} coins from feed")
        return coins

    def _download(self) -> list[dict[str, Any]]:
        """Download the feed, retrying a bounded number of times."""
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = requests.get(
                    self.feed_url,
                    timeout=self.timeout,
                    headers={"Cache-Control": "no-cache"},
                )
                response.raise_for_status()
                payload = response.json()
                if isinstance(payload, dict):
                    payload = payload.get("coins", [])
                if not isinstance(payload, list):
                    raise FeedError("Coin feed is not a list")
                return payload
            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.warning(
                    f"Coin feed request failed (attempt {attempt}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay)

        raise FeedError(f"Coin feed unavailable: {last_error}")

    @staticmethod
    def parse_coin(row: dict[str, Any]) -> Optional[CoinSnapshot]:
        """Map a feed row to a CoinSnapshot; rows without an id are dropped."""
        coin_id = row.get("coingecko_id") or row.get("id")
        if not coin_id:
            return None

        health = row.get("health_score")
        consistency = row.get("consistency_score")
        return CoinSnapshot(
            coin_id=str(coin_id),
            name=row.get("name") or str(coin_id),
            symbol=(row.get("symbol") or str(coin_id)).upper(),
            price=safe_number(row.get("price")),
            market_cap=safe_number(row.get("market_cap")),
            volume_24h=safe_number(row.get("volume_24h")),
            price_change_24h=safe_number(row.get("price_change_24h")),
            developer_stars=safe_number(row.get("github_stars")),
            developer_forks=safe_number(row.get("github_forks")),
            developer_last_update=parse_timestamp(row.get("github_last_updated")),
            social_followers=safe_number(row.get("twitter_followers")),
            social_first_post_date=parse_timestamp(row.get("twitter_first_tweet_date")),
            health_score=None if health is None else safe_number(health),
            consistency_score=None if consistency is None else safe_number(consistency),
        )
