import asyncio
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

import httpx

from core.config import settings
from core.errors import SyncNotConfiguredError
from helpers import cache_get
from queries.settings import TAX_SERVICE_KEY, set_setting
from queries.sync_state import set_state
from services.scheduler import PeriodicTask, Scheduler, compute_delay
from services.sync_service import SyncResult
from services.sync_status import STATUS_CACHE_KEY
from tests._support import TENANT, SqliteDB


NOW = datetime(2026, 3, 1, 12, 0, 0)


class _FakeSyncService:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, datetime | None]] = []
        self.gate: asyncio.Event | None = None
        self.error = error

    async def run_sync(self, db, principal, since=None):
        self.calls.append((principal.tenant_id, since))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return SyncResult(
            anchor=NOW,
            watermark_before=since or NOW - timedelta(minutes=30),
            record_count=3,
            new=2,
            updated=1,
        )


class TestComputeDelay(unittest.TestCase):
    def test_never_ran_means_now(self):
        self.assertEqual(compute_delay(None, NOW, 1800), 0.0)

    def test_delay_measured_from_last_run(self):
        self.assertEqual(compute_delay(NOW - timedelta(minutes=10), NOW, 1800), 1200.0)

    def test_overdue_runs_immediately(self):
        self.assertEqual(compute_delay(NOW - timedelta(hours=5), NOW, 1800), 0.0)


class TestPeriodicTask(unittest.IsolatedAsyncioTestCase):
    async def test_run_now_is_noop_while_in_flight(self):
        gate = asyncio.Event()
        runs = 0

        async def job():
            nonlocal runs
            runs += 1
            await gate.wait()
            return "done"

        task = PeriodicTask("t", job, lambda: None)
        first = asyncio.create_task(task.run_now())
        await asyncio.sleep(0)

        self.assertTrue(task.running)
        self.assertIsNone(await task.run_now())

        gate.set()
        self.assertEqual(await first, "done")
        self.assertEqual(runs, 1)
        self.assertFalse(task.running)

    async def test_loop_fires_when_delay_elapses_then_goes_dormant(self):
        ran = asyncio.Event()
        delays = iter([0.0])

        async def job():
            ran.set()

        task = PeriodicTask("t", job, lambda: next(delays, None))
        task.start()
        try:
            await asyncio.wait_for(ran.wait(), timeout=2)
        finally:
            await task.stop()

        self.assertFalse(task.started)

    async def test_poke_recomputes_delay(self):
        ran = asyncio.Event()
        delays = iter([3600.0, 0.0])

        async def job():
            ran.set()

        task = PeriodicTask("t", job, lambda: next(delays, None))
        task.start()
        try:
            await asyncio.sleep(0.01)
            self.assertFalse(ran.is_set())
            task.poke()
            await asyncio.wait_for(ran.wait(), timeout=2)
        finally:
            await task.stop()

    async def test_job_error_does_not_kill_loop(self):
        ran_twice = asyncio.Event()
        runs = 0
        delays = iter([0.0, 0.0])

        async def job():
            nonlocal runs
            runs += 1
            if runs == 1:
                raise RuntimeError("boom")
            ran_twice.set()

        task = PeriodicTask("t", job, lambda: next(delays, None))
        task.start()
        try:
            await asyncio.wait_for(ran_twice.wait(), timeout=2)
        finally:
            await task.stop()

        self.assertEqual(runs, 2)

    async def test_delay_error_falls_back_instead_of_going_dormant(self):
        ran = asyncio.Event()
        calls = 0

        def next_delay():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("database is locked")
            return None

        async def job():
            ran.set()

        task = PeriodicTask("t", job, next_delay, fallback_delay=0.0)
        task.start()
        try:
            await asyncio.wait_for(ran.wait(), timeout=2)
        finally:
            await task.stop()


class TestScheduler(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.db = SqliteDB()
        self.sync = _FakeSyncService()
        self.cache: dict = {}
        patcher = patch.object(settings, "SYNC_INTERVAL_SECONDS", 1800)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.scheduler = Scheduler(self.sync, cache=self.cache, session_factory=self.db.SessionLocal, clock=lambda: NOW)

    def tearDown(self):
        self.db.close()

    def _configure(self):
        with self.db.SessionLocal() as s:
            set_setting(s, TAX_SERVICE_KEY, {"tin": TENANT, "login": "acc", "password": "pw"})

    # -------------------------
    # drift-correcting delay / dormancy
    # -------------------------

    def test_dormant_without_credentials(self):
        self.assertIsNone(self.scheduler._sync_delay())

    def test_dormant_without_watermark(self):
        self._configure()
        self.assertIsNone(self.scheduler._sync_delay())

    def test_delay_follows_last_run(self):
        self._configure()
        with self.db.SessionLocal() as s:
            set_state(s, TENANT, watermark=NOW - timedelta(minutes=10), last_run_at=NOW - timedelta(minutes=10))

        self.assertEqual(self.scheduler._sync_delay(), 1200.0)

    async def test_scheduled_sync_logs_failures_only(self):
        self._configure()
        self.sync.error = httpx.ConnectError("network down")

        self.assertIsNone(await self.scheduler._scheduled_sync())
        self.assertEqual(len(self.sync.calls), 1)

    def _overdue(self):
        self._configure()
        with self.db.SessionLocal() as s:
            set_state(s, TENANT, watermark=NOW - timedelta(hours=5), last_run_at=NOW - timedelta(hours=5))

    async def test_failed_sync_waits_a_full_interval(self):
        self._overdue()
        self.assertEqual(self.scheduler._sync_delay(), 0.0)

        self.sync.error = httpx.ConnectError("network down")
        await self.scheduler._scheduled_sync()
        self.assertEqual(self.scheduler._sync_delay(), 1800.0)

        # a successful run clears the failure
        self.sync.error = None
        await self.scheduler._scheduled_sync()
        self.assertEqual(self.scheduler._sync_delay(), 0.0)

    async def test_overdue_failing_sync_is_not_retried_in_a_loop(self):
        self._overdue()
        self.sync.error = httpx.ConnectError("network down")

        self.scheduler.sync_task.start()
        try:
            await asyncio.sleep(0.2)
        finally:
            await self.scheduler.sync_task.stop()

        self.assertEqual(len(self.sync.calls), 1)

    def test_sync_task_falls_back_to_interval(self):
        self.assertEqual(self.scheduler.sync_task.fallback_delay, 1800)

    # -------------------------
    # manual trigger
    # -------------------------

    async def test_trigger_now_returns_summary(self):
        self._configure()
        since = datetime(2026, 2, 1)

        res = await self.scheduler.trigger_now(since=since)

        self.assertEqual(res["status"], "ok")
        self.assertEqual(res["record_count"], 3)
        self.assertEqual(res["new"], 2)
        self.assertEqual(res["updated"], 1)
        self.assertEqual(self.sync.calls, [(TENANT, since)])

    async def test_trigger_now_skipped_while_running(self):
        self._configure()
        self.sync.gate = asyncio.Event()

        first = asyncio.create_task(self.scheduler.trigger_now())
        await asyncio.sleep(0)
        self.assertTrue(self.scheduler.syncing)

        second = await self.scheduler.trigger_now()
        self.assertEqual(second["status"], "skipped")

        self.sync.gate.set()
        self.assertEqual((await first)["status"], "ok")
        self.assertEqual(len(self.sync.calls), 1)
        self.assertFalse(self.scheduler.syncing)

    async def test_trigger_now_without_credentials(self):
        res = await self.scheduler.trigger_now()

        self.assertEqual(res["status"], "not_configured")
        self.assertEqual(self.sync.calls, [])

    async def test_trigger_now_without_watermark(self):
        self._configure()
        self.sync.error = SyncNotConfiguredError("no watermark")

        res = await self.scheduler.trigger_now()
        self.assertEqual(res["status"], "not_configured")

    async def test_trigger_now_reports_failure(self):
        self._configure()
        self.sync.error = httpx.ConnectError("network down")

        res = await self.scheduler.trigger_now()

        self.assertEqual(res["status"], "error")
        self.assertEqual(res["step"], "run_sync")
        self.assertIn("network down", res["error"])

    # -------------------------
    # status refresh
    # -------------------------

    async def test_refresh_status_fills_cache(self):
        self._configure()

        data = await self.scheduler.refresh_status()

        self.assertTrue(data["configured"])
        self.assertEqual(data["unseen_count"], 0)
        self.assertEqual(cache_get(self.cache, STATUS_CACHE_KEY), data)


if __name__ == "__main__":
    unittest.main()
