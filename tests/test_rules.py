"""
Alert evaluator tests.
"""

from unittest.mock import AsyncMock

import pytest

from coinpulse.database.models import AlertDefinition, AlertType
from coinpulse.rules.engine import AlertEvaluator


def alert(alert_type: AlertType, threshold: float) -> AlertDefinition:
    return AlertDefinition(
        user_id="u1",
        coin_id="bitcoin",
        alert_type=alert_type,
        threshold_value=threshold,
        id=1,
    )


class TestScoreAlerts:
    """Test health and consistency score alerts."""

    @pytest.mark.asyncio
    async def test_health_below_threshold(self, backend, btc_snapshot):
        """Should trigger when the health score is below the threshold."""
        btc_snapshot.health_score = 32
        candidate = await AlertEvaluator(backend).evaluate(
            alert(AlertType.HEALTH_SCORE, 40), btc_snapshot
        )

        assert candidate is not None
        assert candidate.current_value == 32
        assert candidate.threshold_value == 40
        assert candidate.message == "BTC health score dropped to 32 (below 40)"

    @pytest.mark.asyncio
    async def test_health_at_threshold(self, backend, btc_snapshot):
        """Should not trigger when the score equals the threshold."""
        btc_snapshot.health_score = 40
        candidate = await AlertEvaluator(backend).evaluate(
            alert(AlertType.HEALTH_SCORE, 40), btc_snapshot
        )
        assert candidate is None

    @pytest.mark.asyncio
    async def test_consistency_below_threshold(self, backend, btc_snapshot):
        """Should trigger on a low consistency score."""
        btc_snapshot.consistency_score = 18.5
        candidate = await AlertEvaluator(backend).evaluate(
            alert(AlertType.CONSISTENCY_SCORE, 50), btc_snapshot
        )

        assert candidate.alert_type is AlertType.CONSISTENCY_SCORE
        assert "18.5" in candidate.message


class TestPriceDropAlert:
    """Test price drop alerts."""

    @pytest.mark.asyncio
    async def test_drop_exceeds_threshold(self, backend, btc_snapshot):
        """Should report the magnitude of the drop."""
        candidate = await AlertEvaluator(backend).evaluate(
            alert(AlertType.PRICE_DROP, 5), btc_snapshot
        )

        assert candidate.current_value == pytest.approx(7.2)
        assert "7.2" in candidate.message
        assert "5" in candidate.message

    @pytest.mark.asyncio
    async def test_drop_below_threshold(self, backend, btc_snapshot):
        """Should not trigger on a small drop."""
        btc_snapshot.price_change_24h = -3.0
        assert await AlertEvaluator(backend).evaluate(
            alert(AlertType.PRICE_DROP, 5), btc_snapshot
        ) is None

    @pytest.mark.asyncio
    async def test_price_rise_never_triggers(self, backend, btc_snapshot):
        """Should ignore positive price changes."""
        btc_snapshot.price_change_24h = 12.0
        assert await AlertEvaluator(backend).evaluate(
            alert(AlertType.PRICE_DROP, 5), btc_snapshot
        ) is None


class TestCommunityAlerts:
    """Test migration and delisting alerts."""

    @pytest.mark.asyncio
    async def test_verified_report_triggers(self, backend, btc_snapshot):
        """Should trigger when a verified report exists."""
        backend.reports.add(("bitcoin", "delisting"))
        candidate = await AlertEvaluator(backend).evaluate(
            alert(AlertType.DELISTING, 0), btc_snapshot
        )

        assert candidate.current_value == 1
        assert candidate.message == "BTC delisting alert verified by community"

    @pytest.mark.asyncio
    async def test_no_report(self, backend, btc_snapshot):
        """Should not trigger without a verified report."""
        assert await AlertEvaluator(backend).evaluate(
            alert(AlertType.MIGRATION, 0), btc_snapshot
        ) is None

    @pytest.mark.asyncio
    async def test_report_lookup_failure(self, backend, btc_snapshot):
        """Should treat a failed lookup as no report."""
        backend.fetch_verified_community_report = AsyncMock(side_effect=RuntimeError("down"))
        assert await AlertEvaluator(backend).evaluate(
            alert(AlertType.MIGRATION, 0), btc_snapshot
        ) is None


class TestDispatch:
    """Test alert type dispatch."""

    @pytest.mark.asyncio
    async def test_summary_type_rejected(self, backend, btc_snapshot):
        """Should refuse to evaluate synthetic summary types."""
        with pytest.raises(ValueError, match="market_event"):
            await AlertEvaluator(backend).evaluate(
                alert(AlertType.MARKET_EVENT, 1), btc_snapshot
            )
