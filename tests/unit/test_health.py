"""Tests for health check endpoints and sweep overdue detection."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from jobs import health
from jobs.health import is_sweep_overdue


class TestSweepOverdue:
    """Tests for is_sweep_overdue."""

    def test_never_run_is_overdue(self, t0):
        assert is_sweep_overdue(None, now=t0) is True

    def test_recent_sweep(self, t0):
        assert is_sweep_overdue(t0 - timedelta(hours=24), now=t0) is False

    def test_missed_window(self, t0):
        assert is_sweep_overdue(t0 - timedelta(hours=26), now=t0) is True


@pytest.fixture
def scheduler():
    job = MagicMock()
    job.id = "settlement_sweep"
    job.name = "Settlement sweep"
    job.next_run_time = None
    scheduler = MagicMock()
    scheduler.running = True
    scheduler.get_jobs.return_value = [job]
    return scheduler


class TestHealthHandler:
    """Tests for /health."""

    @pytest.mark.asyncio
    async def test_uninitialized(self):
        with patch.object(health, "_scheduler", None):
            response = await health.health_handler(MagicMock())

        assert response.status == 503

    @pytest.mark.asyncio
    async def test_healthy(self, scheduler):
        sweep = {"last_sweep": {"id": 1}, "overdue": False}
        with patch.object(health, "_scheduler", scheduler), patch.object(
            health, "get_sweep_status", new=AsyncMock(return_value=sweep)
        ):
            response = await health.health_handler(MagicMock())

        body = json.loads(response.text)
        assert response.status == 200
        assert body["status"] == "healthy"
        assert body["jobs"][0]["id"] == "settlement_sweep"
        assert body["overdue"] is False

    @pytest.mark.asyncio
    async def test_overdue_sweep_degrades(self, scheduler):
        sweep = {"last_sweep": None, "overdue": True}
        with patch.object(health, "_scheduler", scheduler), patch.object(
            health, "get_sweep_status", new=AsyncMock(return_value=sweep)
        ):
            response = await health.health_handler(MagicMock())

        assert json.loads(response.text)["status"] == "degraded"


class TestReadinessAndLiveness:
    """Tests for /readiness and /liveness."""

    @pytest.mark.asyncio
    async def test_not_ready_without_scheduler(self):
        with patch.object(health, "_scheduler", None):
            response = await health.readiness_handler(MagicMock())
        assert response.status == 503

    @pytest.mark.asyncio
    async def test_liveness(self):
        response = await health.liveness_handler(MagicMock())
        assert json.loads(response.text)["alive"] is True
