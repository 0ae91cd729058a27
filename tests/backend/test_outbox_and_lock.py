"""
Tests for the regeneration outbox and the per-portfolio lease lock.
"""

import time
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId


class TestOutbox:
    """Tests for OutboxService."""

    @pytest.mark.asyncio
    async def test_enqueue_coalesces_pending_tasks(self, services, mock_ledger_db):
        await services.outbox.enqueue("p1")
        await services.outbox.enqueue("p1")
        await services.outbox.enqueue("p2")

        assert await mock_ledger_db.outbox.count_documents({"portfolio_id": "p1"}) == 1
        assert await mock_ledger_db.outbox.count_documents({}) == 2

    @pytest.mark.asyncio
    async def test_claim_marks_processing(self, services):
        await services.outbox.enqueue("p1")

        task = await services.outbox.claim_next()

        assert task.portfolio_id == "p1"
        assert task.kind == "regenerate_suggestions"
        assert task.status == "processing"
        assert task.attempts == 1
        assert task.locked_until > time.time()
        assert await services.outbox.claim_next() is None

    @pytest.mark.asyncio
    async def test_delayed_task_is_not_due(self, services):
        await services.outbox.enqueue("p1", delay_seconds=60)

        assert await services.outbox.claim_next() is None

    @pytest.mark.asyncio
    async def test_expired_lease_is_reclaimed(self, services, mock_ledger_db):
        await services.outbox.enqueue("p1")
        task = await services.outbox.claim_next()
        await mock_ledger_db.outbox.update_one(
            {"_id": ObjectId(task.id)}, {"$set": {"locked_until": time.time() - 1}}
        )

        again = await services.outbox.claim_next()

        assert again.id == task.id
        assert again.attempts == 2

    @pytest.mark.asyncio
    async def test_complete(self, services, mock_ledger_db):
        await services.outbox.enqueue("p1")
        task = await services.outbox.claim_next()

        await services.outbox.complete(task.id)

        doc = await mock_ledger_db.outbox.find_one({"_id": ObjectId(task.id)})
        assert doc["status"] == "done"

    @pytest.mark.asyncio
    async def test_fail_schedules_retry_with_backoff(self, services, mock_ledger_db):
        await services.outbox.enqueue("p1")
        task = await services.outbox.claim_next()

        await services.outbox.fail(task.id, "RuntimeError: boom")

        doc = await mock_ledger_db.outbox.find_one({"_id": ObjectId(task.id)})
        assert doc["status"] == "pending"
        assert doc["last_error"] == "RuntimeError: boom"
        assert doc["available_at"] > time.time()
        assert await services.outbox.claim_next() is None

    @pytest.mark.asyncio
    async def test_fail_after_max_attempts_is_permanent(self, services, mock_ledger_db):
        await services.outbox.enqueue("p1")
        task = await services.outbox.claim_next()
        await mock_ledger_db.outbox.update_one(
            {"_id": ObjectId(task.id)}, {"$set": {"attempts": services.outbox.settings.outbox_max_attempts}}
        )

        await services.outbox.fail(task.id, "RuntimeError: boom")

        doc = await mock_ledger_db.outbox.find_one({"_id": ObjectId(task.id)})
        assert doc["status"] == "failed"

    @pytest.mark.asyncio
    async def test_newer_task_supersedes_failed_one(self, services, mock_ledger_db):
        await services.outbox.enqueue("p1")
        task = await services.outbox.claim_next()
        # A mutation while the task ran queued a fresh one
        await services.outbox.enqueue("p1")

        await services.outbox.fail(task.id, "RuntimeError: boom")

        doc = await mock_ledger_db.outbox.find_one({"_id": ObjectId(task.id)})
        assert doc["status"] == "done"
        assert await mock_ledger_db.outbox.count_documents({"status": "pending"}) == 1

    @pytest.mark.asyncio
    async def test_process_batch(self, services, mock_ledger_db):
        await services.outbox.enqueue("ok")
        await services.outbox.enqueue("broken")

        async def handler(task):
            if task.portfolio_id == "broken":
                raise RuntimeError("boom")

        completed = await services.outbox.process_batch(handler, limit=10)

        assert completed == 1
        assert await mock_ledger_db.outbox.count_documents({"status": "done"}) == 1
        broken = await mock_ledger_db.outbox.find_one({"portfolio_id": "broken"})
        assert broken["status"] == "pending"
        assert broken["last_error"] == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_delete_for_portfolio(self, services):
        await services.outbox.enqueue("p1")
        await services.outbox.enqueue("p2")

        assert await services.outbox.delete_for_portfolio("p1") == 1

    @pytest.mark.asyncio
    async def test_regeneration_through_the_outbox(self, services, make_portfolio, mock_ledger_db):
        portfolio = await make_portfolio({"AAA": 1.0}, monthly_contribution=100.0)
        await services.outbox.enqueue(portfolio.id)

        async def handler(task):
            await services.suggestions.regenerate_suggestions(task.portfolio_id)

        assert await services.outbox.process_batch(handler) == 1
        assert await mock_ledger_db.transactions.count_documents(
            {"portfolio_id": portfolio.id, "status": "PENDING"}
        ) == 2


class TestPortfolioLock:
    """Tests for the lease lock on portfolio documents."""

    @pytest.mark.asyncio
    async def test_acquire_bumps_version_and_release_clears(self, make_portfolio, mock_ledger_db):
        from app.services.portfolio_lock import PortfolioLock

        portfolio = await make_portfolio()

        async with PortfolioLock(mock_ledger_db.portfolios, portfolio.id) as lock:
            assert lock.version == 1
            doc = await mock_ledger_db.portfolios.find_one({"_id": ObjectId(portfolio.id)})
            assert doc["lock_token"] == lock.token

        doc = await mock_ledger_db.portfolios.find_one({"_id": ObjectId(portfolio.id)})
        assert doc["lock_until"] is None
        assert doc["lock_token"] is None

    @pytest.mark.asyncio
    async def test_held_lock_times_out(self, make_portfolio, mock_ledger_db):
        from app.core.errors import PortfolioBusyError
        from app.services.portfolio_lock import PortfolioLock

        portfolio = await make_portfolio()

        async with PortfolioLock(mock_ledger_db.portfolios, portfolio.id):
            contender = PortfolioLock(
                mock_ledger_db.portfolios, portfolio.id, wait_seconds=0.1, poll_interval=0.02
            )
            with pytest.raises(PortfolioBusyError):
                await contender.acquire()

    @pytest.mark.asyncio
    async def test_expired_lease_can_be_taken(self, make_portfolio, mock_ledger_db):
        from app.services.portfolio_lock import PortfolioLock

        portfolio = await make_portfolio()
        await mock_ledger_db.portfolios.update_one(
            {"_id": ObjectId(portfolio.id)},
            {"$set": {"lock_until": time.time() - 5, "lock_token": "crashed-worker"}},
        )

        async with PortfolioLock(mock_ledger_db.portfolios, portfolio.id, wait_seconds=0) as lock:
            assert lock.token != "crashed-worker"

    @pytest.mark.asyncio
    async def test_missing_portfolio(self, mock_ledger_db):
        from app.core.errors import NotFoundError
        from app.services.portfolio_lock import PortfolioLock

        with pytest.raises(NotFoundError):
            await PortfolioLock(mock_ledger_db.portfolios, str(ObjectId()), wait_seconds=0).acquire()

    @pytest.mark.asyncio
    async def test_release_keeps_someone_elses_lease(self, make_portfolio, mock_ledger_db):
        from app.services.portfolio_lock import PortfolioLock

        portfolio = await make_portfolio()
        lock = PortfolioLock(mock_ledger_db.portfolios, portfolio.id)
        await lock.acquire()
        await mock_ledger_db.portfolios.update_one(
            {"_id": ObjectId(portfolio.id)}, {"$set": {"lock_token": "someone-else"}}
        )

        await lock.release()

        doc = await mock_ledger_db.portfolios.find_one({"_id": ObjectId(portfolio.id)})
        assert doc["lock_token"] == "someone-else"

    @pytest.mark.asyncio
    async def test_busy_portfolio_surfaces_from_ledger(self, services, make_portfolio, add_tx, test_user):
        """A confirm racing a held lock fails with PortfolioBusyError and leaves the row pending."""
        from app.core.errors import PortfolioBusyError
        from app.services.portfolio_lock import PortfolioLock

        portfolio = await make_portfolio()
        tx_id = await add_tx(portfolio.id, "CASH_CREDIT", 100.0, status="PENDING", auto=True)
        services.ledger.lock = lambda pid: PortfolioLock(
            services.ledger.portfolios, pid, wait_seconds=0.05, poll_interval=0.01
        )

        async with PortfolioLock(services.ledger.portfolios, portfolio.id):
            with pytest.raises(PortfolioBusyError):
                await services.ledger.confirm_transaction(tx_id, test_user.id)

        assert await services.ledger.get_current_cash_balance(portfolio.id) == 0.0

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_the_batch(self, services):
        await services.outbox.enqueue("a")
        await services.outbox.enqueue("b")
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])

        assert await services.outbox.process_batch(handler) == 1
        assert handler.await_count == 2
