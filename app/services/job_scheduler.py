"""
Lightweight in-process scheduler for reconciliation jobs.
Uses job_settings.schedule_cron and updates last_run_at/next_run_at.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator, Set

from app.core.clock import as_utc, now_utc
from app.database import SessionLocal
from app.models import JobSetting, RoutineLog
from app.services.job_runner import compute_next_run, run_job

logger = logging.getLogger(__name__)


class JobScheduler:
    """Polls DB for due jobs and executes them."""

    def __init__(self, poll_seconds: int = 60):
        self.poll_seconds = poll_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._running_jobs: Set[str] = set()

    def start(self) -> None:
        """Start scheduler loop as background task."""
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("JobScheduler started")

    async def stop(self) -> None:
        """Stop scheduler loop and wait for completion."""
        self._stop_event.set()
        if self._task:
            await self._task
        logger.info("JobScheduler stopped")

    def is_running(self, job_name: str) -> bool:
        return job_name in self._running_jobs

    @contextmanager
    def claim(self, job_name: str) -> Iterator[bool]:
        """
        Hold the job for a run started outside the scheduler loop.
        Yields False when the job is already running.
        """
        if job_name in self._running_jobs:
            yield False
            return
        self._running_jobs.add(job_name)
        try:
            yield True
        finally:
            self._running_jobs.discard(job_name)

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self._tick()
            except Exception as exc:
                logger.exception("JobScheduler tick failed: %s", exc)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                pass

    async def _tick(self) -> None:
        now = now_utc()
        db = SessionLocal()
        try:
            jobs = (
                db.query(JobSetting)
                .filter(
                    JobSetting.is_enabled.is_(True),
                    JobSetting.schedule_cron.isnot(None),
                )
                .all()
            )

            for setting in jobs:
                if setting.name in self._running_jobs:
                    continue

                # First sighting of a job: schedule it, do not run it on startup.
                if setting.next_run_at is None:
                    setting.next_run_at = compute_next_run(setting.schedule_cron, now)
                    db.commit()
                    continue

                if as_utc(setting.next_run_at) > now:
                    continue

                # Ensure next_run_at moves forward even if execution fails.
                setting.next_run_at = compute_next_run(setting.schedule_cron, now)
                db.commit()

                self._running_jobs.add(setting.name)
                asyncio.create_task(self._execute_job(setting.name))
        finally:
            db.close()

    async def _execute_job(self, job_name: str) -> None:
        db = SessionLocal()
        try:
            setting = db.query(JobSetting).filter(JobSetting.name == job_name).first()
            if not setting or not setting.is_enabled:
                return

            results = await run_job(db, setting)
            failed = [name for name, result in results.items() if not result.get("success")]
            logger.info(
                "Scheduled run complete for job %s: %s routines, failed=%s",
                job_name,
                len(results),
                failed,
            )
        except Exception as exc:
            db.rollback()
            try:
                db.add(
                    RoutineLog(
                        job_name=job_name,
                        routine_name="scheduler",
                        action="scheduler_execute",
                        status="error",
                        message=f"Scheduled execution failed: {exc}",
                    )
                )
                db.commit()
            except Exception:
                db.rollback()
                logger.error("Could not record scheduler failure for job %s", job_name)
            logger.exception("Scheduled execution failed for job %s: %s", job_name, exc)
        finally:
            self._running_jobs.discard(job_name)
            db.close()
