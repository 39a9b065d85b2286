"""
Entry point tests.
Tests for the scheduled and manual triggers.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from coinpulse.database.models import CycleResult
from coinpulse.main import TriggerResponse, run_manual_trigger, run_scheduled_trigger
from coinpulse.monitor import CycleFailedError


def monitor_returning(result=None, error=None):
    monitor = Mock()
    monitor.run_cycle = AsyncMock(return_value=result, side_effect=error)
    return monitor


class TestTriggers:
    """Test trigger response bodies."""

    @pytest.mark.asyncio
    async def test_scheduled_success(self):
        """Should wrap cycle statistics in a success body."""
        result = CycleResult(alerts_processed=4, notifications_triggered=2, notifications_sent=1)
        response = await run_scheduled_trigger(monitor_returning(result))

        assert response.status_code == 200
        assert response.ok
        assert response.body["success"] is True
        assert response.body["message"] == "Scheduled monitoring completed"
        assert response.body["result"]["alertsProcessed"] == 4
        assert response.body["result"]["notificationsSent"] == 1
        assert "timestamp" in response.body

    @pytest.mark.asyncio
    async def test_manual_matches_scheduled(self):
        """Should return the same result shape for manual runs."""
        result = CycleResult(alerts_processed=1)
        scheduled = await run_scheduled_trigger(monitor_returning(result))
        manual = await run_manual_trigger(monitor_returning(result))

        assert manual.status_code == scheduled.status_code
        assert manual.body["result"] == scheduled.body["result"]
        assert set(manual.body) == set(scheduled.body)

    @pytest.mark.asyncio
    async def test_no_alerts_message(self):
        """Should say when there was nothing to process."""
        response = await run_manual_trigger(monitor_returning(CycleResult()))

        assert response.status_code == 200
        assert response.body["message"] == "No active alerts to process"

    @pytest.mark.asyncio
    async def test_failure(self):
        """Should report a failed cycle with a 500 status."""
        error = CycleFailedError("Failed to fetch alerts: db down")
        response = await run_manual_trigger(monitor_returning(error=error))

        assert response.status_code == 500
        assert not response.ok
        assert response.body == {
            "success": False,
            "message": "Manual monitoring failed",
            "error": "Failed to fetch alerts: db down",
        }


class TestTriggerResponse:
    """Test TriggerResponse."""

    def test_ok_range(self):
        """Should treat only 2xx codes as ok."""
        assert TriggerResponse(204, {}).ok
        assert not TriggerResponse(500, {}).ok
