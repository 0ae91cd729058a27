"""
Tests for the suggestion_outbox worker.

These tests cover:
- Configuration defaults
- Task dispatch to suggestion regeneration
- Batch processing through the outbox service
"""

import pytest
from unittest.mock import AsyncMock, MagicMock


def _task(kind="regenerate_suggestions", portfolio_id="p1"):
    from app.models.outbox import OutboxTask

    return OutboxTask(
        id="t1", portfolio_id=portfolio_id, kind=kind, status="processing", attempts=1, available_at=0.0
    )


def _worker():
    from workers.suggestion_outbox.process_outbox import OutboxWorker

    worker = OutboxWorker()
    worker.services = MagicMock()
    worker.services.suggestions.regenerate_suggestions = AsyncMock(return_value=2)
    worker.outbox = MagicMock()
    worker.outbox.process_batch = AsyncMock(return_value=1)
    return worker


class TestWorkerConfig:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        from workers.suggestion_outbox.process_outbox import config

        assert config.poll_interval_seconds == 5.0
        assert config.batch_size == 20


class TestHandleTask:
    """Tests for dispatching claimed tasks."""

    @pytest.mark.asyncio
    async def test_regenerates_the_task_portfolio(self):
        worker = _worker()

        await worker.handle_task(_task(portfolio_id="p42"))

        worker.services.suggestions.regenerate_suggestions.assert_awaited_once_with("p42")

    @pytest.mark.asyncio
    async def test_unknown_kind_raises(self):
        worker = _worker()

        with pytest.raises(ValueError):
            await worker.handle_task(MagicMock(kind="send_email", portfolio_id="p1"))

        worker.services.suggestions.regenerate_suggestions.assert_not_awaited()


class TestProcessing:
    """Tests for the polling loop."""

    @pytest.mark.asyncio
    async def test_process_once_drains_one_batch(self):
        from workers.suggestion_outbox.process_outbox import config

        worker = _worker()

        assert await worker.process_once() == 1
        worker.outbox.process_batch.assert_awaited_once_with(worker.handle_task, limit=config.batch_size)

    @pytest.mark.asyncio
    async def test_cancellation_stops_the_loop(self):
        import asyncio

        worker = _worker()
        worker.outbox.process_batch = AsyncMock(side_effect=asyncio.CancelledError())

        await worker.run()

        assert worker.outbox.process_batch.await_count == 1

    def test_stop(self):
        worker = _worker()
        worker.running = True

        worker.stop()

        assert worker.running is False
