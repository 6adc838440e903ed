import asyncio
from contextlib import suppress
from datetime import datetime
from typing import Any, Awaitable, Callable

from core.config import settings
from core.errors import SyncNotConfiguredError
from core.logger import log

from db.session import SessionLocal
from helpers import cache_set, utcnow
from queries.sync_state import get_state
from services.credentials import resolve_principal
from services.sync_status import STATUS_CACHE_KEY, build_status


Job = Callable[[], Awaitable[Any]]


def compute_delay(last_run_at: datetime | None, now: datetime, interval: float) -> float:
    """
    Seconds until the next run, measured from the last successful run (not a fixed tick).
    """
    if last_run_at is None:
        return 0.0
    elapsed = (now - last_run_at).total_seconds()
    return max(0.0, interval - elapsed)


class PeriodicTask:
    """
    Single-shot timer that re-arms itself after every run.

    next_delay() -> seconds until the next run, or None to stay dormant until poke().
    If next_delay() raises, the loop waits fallback_delay instead (dormant if None).
    At most one run is in flight; run_now() while running is a no-op (returns None).
    """

    def __init__(
        self,
        name: str,
        job: Job,
        next_delay: Callable[[], float | None],
        fallback_delay: float | None = None,
    ) -> None:
        self.name = name
        self._job = job
        self._next_delay = next_delay
        self.fallback_delay = fallback_delay
        self.running = False
        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self._stop = asyncio.Event()

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        # Prevent double-start
        if self.started:
            log.info("%s already running; start() ignored", self.name)
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name=f"{self.name}_loop")

    async def stop(self) -> None:
        if not self.started:
            return

        self._stop.set()
        self._wake.set()
        self._task.cancel()

        with suppress(asyncio.CancelledError):
            await self._task

    def poke(self) -> None:
        """Recompute the delay now (e.g. after a manual run moved last_run_at)."""
        self._wake.set()

    async def run_now(self, job: Job | None = None) -> Any:
        if self.running:
            log.info("%s already in flight; run skipped", self.name)
            return None

        self.running = True
        try:
            return await (job or self._job)()
        finally:
            self.running = False
            self.poke()

    async def _loop(self) -> None:
        try:
            while not self._stop.is_set():
                self._wake.clear()

                try:
                    delay = self._next_delay()
                except Exception as e:
                    log.exception("%s: computing next run failed: %s", self.name, e)
                    delay = self.fallback_delay

                if delay is None:
                    log.info("%s dormant until poked", self.name)
                    await self._wake.wait()
                    continue

                log.debug("%s next run in %.0fs", self.name, delay)
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=delay)
                    continue  # poked: recompute
                except asyncio.TimeoutError:
                    pass

                if self._stop.is_set():
                    break

                try:
                    await self.run_now()
                except Exception as e:
                    log.exception("%s run failed: %s", self.name, e)

        except asyncio.CancelledError:
            # Normal during shutdown/stop()
            log.info("%s loop cancelled", self.name)
            raise

        finally:
            log.info("%s loop exited", self.name)


class Scheduler:
    """
    Two independent periodic tasks:
      - sync:   full tax service sync, SYNC_INTERVAL_SECONDS after the last successful run
      - status: cheap status snapshot refresh every STATUS_REFRESH_SECONDS
    """

    def __init__(
        self,
        sync_service,
        cache: dict | None = None,
        session_factory=SessionLocal,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.sync = sync_service
        self.cache = cache if cache is not None else {}
        self.session_factory = session_factory
        self._clock = clock

        self.interval = max(1, int(settings.SYNC_INTERVAL_SECONDS))
        self.status_interval = max(1, int(settings.STATUS_REFRESH_SECONDS))

        # set by a failed sync; the next attempt waits a full interval from it
        self.last_failed_at: datetime | None = None

        self.sync_task = PeriodicTask(
            "sync_scheduler", self._scheduled_sync, self._sync_delay, fallback_delay=self.interval
        )
        self.status_task = PeriodicTask(
            "status_refresh", self.refresh_status, lambda: self.status_interval, fallback_delay=self.status_interval
        )

    @property
    def syncing(self) -> bool:
        return self.sync_task.running

    async def start(self) -> None:
        """
        Starts both loops if enabled. Safe to call multiple times.
        """
        log.info("SYNC_ENABLED value = %s", settings.SYNC_ENABLED)

        if not settings.SYNC_ENABLED:
            log.info("SYNC_ENABLED=false -> scheduler not started")
            return

        self.sync_task.start()
        self.status_task.start()
        log.info("Scheduler started (sync interval=%ss, status interval=%ss)", self.interval, self.status_interval)

    async def stop(self) -> None:
        await self.sync_task.stop()
        await self.status_task.stop()
        log.info("Scheduler stopped")

    def schedule_next(self) -> None:
        self.sync_task.poke()

    # --------------------------------------------------
    # sync task
    # --------------------------------------------------

    def _sync_delay(self) -> float | None:
        db = self.session_factory()
        try:
            principal = resolve_principal(db)
            if principal is None:
                return None
            state = get_state(db, principal.tenant_id)
            # no watermark yet: wait for a manual first run
            if state is None or state.watermark is None:
                return None
            now = self._clock()
            delay = compute_delay(state.last_run_at, now, self.interval)
            if self.last_failed_at is not None:
                delay = max(delay, compute_delay(self.last_failed_at, now, self.interval))
            return delay
        finally:
            db.close()

    async def _scheduled_sync(self):
        db = self.session_factory()
        try:
            principal = resolve_principal(db)
            if principal is None:
                log.info("tax service credentials missing; scheduled sync skipped")
                return None

            res = await self.sync.run_sync(db, principal)
            self.last_failed_at = None
            log.info("sync cycle result: %s", res.to_dict())
            return res

        except asyncio.CancelledError:
            db.rollback()
            raise

        except Exception as e:
            # background runs only log; watermark stays, next run repeats the window
            db.rollback()
            self.last_failed_at = self._clock()
            log.exception("sync cycle failed: %s (next attempt in %ss)", e, self.interval)
            return None

        finally:
            db.close()

    async def trigger_now(self, since: datetime | None = None) -> dict:
        """
        Manual "sync now": runs immediately unless a run is in flight,
        then re-arms the timer relative to the new last_run_at.
        """
        if self.sync_task.running:
            return {"status": "skipped", "reason": "sync already running"}

        async def job() -> dict:
            db = self.session_factory()
            try:
                principal = resolve_principal(db)
                if principal is None:
                    return {"status": "not_configured", "reason": "tax service credentials missing"}

                try:
                    res = await self.sync.run_sync(db, principal, since=since)
                except SyncNotConfiguredError as e:
                    return {"status": "not_configured", "reason": str(e)}
                except Exception as e:
                    db.rollback()
                    self.last_failed_at = self._clock()
                    log.exception("manual sync failed: %s", e)
                    return {"status": "error", "step": "run_sync", "error": str(e)}

                self.last_failed_at = None
                return {"status": "ok", **res.to_dict()}
            finally:
                db.close()

        res = await self.sync_task.run_now(job)
        if res is None:
            return {"status": "skipped", "reason": "sync already running"}
        return res

    # --------------------------------------------------
    # status task
    # --------------------------------------------------

    async def refresh_status(self) -> dict:
        db = self.session_factory()
        try:
            data = build_status(db)
        finally:
            db.close()

        cache_set(self.cache, STATUS_CACHE_KEY, data, ttl_seconds=settings.STATUS_TTL_SECONDS)
        return data
