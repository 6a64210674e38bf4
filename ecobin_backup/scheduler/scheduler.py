"""
Retention scheduler for cron-driven backups.

This module provides the RetentionScheduler class, which runs one cron
job per enabled tier. Each firing exports and persists a new artifact
and, only when that succeeds, deletes the tier's expired artifacts.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, UTC
from typing import Any, Callable, Deque, Dict, List, Optional

import croniter

from ecobin_backup.backup.exporter import SnapshotExporter
from ecobin_backup.backup.repository import BackupRepository
from ecobin_backup.backup.validator import BackupValidator
from ecobin_backup.core.exceptions import SchedulerError
from ecobin_backup.models.artifact import BackupArtifact, BackupTier, normalize_tier
from ecobin_backup.models.config import ScheduleConfig, default_schedules
from ecobin_backup.models.results import BackupRunResult, TestBackupResult
from ecobin_backup.utils.helpers import format_timestamp
from ecobin_backup.utils.logging import MAX_RECORDED_ENTRIES, LogCategory, LogEntry, LogLevel, emit

logger = logging.getLogger(__name__)


class ScheduleJob:
    """Cron loop for one tier. Calls ``on_fire(tier)`` at every firing."""

    def __init__(self, tier: str, config: ScheduleConfig, on_fire: Callable[[str], None]):
        self.tier = tier
        self.config = config
        self.on_fire = on_fire
        self.next_run: Optional[datetime] = None
        self._last_fired: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def compute_next_run(self, now: Optional[datetime] = None) -> datetime:
        """Next firing time after ``now``, evaluated in UTC."""
        cron = croniter.croniter(self.config.cron, now or datetime.now(UTC))
        return cron.get_next(datetime)

    def _seconds_until_next(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(UTC)
        # An early wakeup must not land on the instant that just fired
        base = max(now, self._last_fired) if self._last_fired else now
        self.next_run = self.compute_next_run(base)
        return max(0.0, (self.next_run - now).total_seconds())

    def start(self):
        if self.scheduled:
            return
        self.next_run = self.compute_next_run()
        self._task = asyncio.create_task(self._loop(), name=f"backup-schedule-{self.tier}")

    async def stop(self):
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.next_run = None
        self._last_fired = None

    async def _loop(self):
        while True:
            await asyncio.sleep(self._seconds_until_next())
            self._last_fired = self.next_run
            try:
                self.on_fire(self.tier)
            except Exception as e:
                logger.error(f"Scheduled {self.tier} backup could not be started: {e}")


class RetentionScheduler:
    """
    Runs the tiered backup schedules.

    Every enabled tier gets its own cron job. Different tiers may run at
    the same time; a tier whose previous run is still in flight skips the
    new firing.
    """

    def __init__(
        self,
        exporter: SnapshotExporter,
        repository: BackupRepository,
        validator: Optional[BackupValidator] = None,
        schedules: Optional[Dict[str, ScheduleConfig]] = None
    ):
        self.exporter = exporter
        self.repository = repository
        self.validator = validator or BackupValidator(repository)
        self.schedules: Dict[str, ScheduleConfig] = dict(
            schedules if schedules is not None else default_schedules()
        )

        self._running = False
        self._jobs: Dict[str, ScheduleJob] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._last_runs: Dict[str, BackupRunResult] = {}
        self._scheduler_logs: Deque[LogEntry] = deque(maxlen=MAX_RECORDED_ENTRIES)

    def _log(self, level: LogLevel, message: str, backup_id: Optional[str] = None, **kwargs):
        """Add a log entry."""
        log_entry = LogEntry(
            level=level,
            category=LogCategory.SCHEDULER,
            component="RetentionScheduler",
            message=message,
            backup_id=backup_id,
            tier=kwargs.pop("tier", None),
            details=kwargs
        )
        self._scheduler_logs.append(log_entry)
        emit(logger, log_entry)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start a cron job for every enabled tier. A second call does nothing."""
        if self._running:
            self._log(LogLevel.WARNING, "Backup scheduler is already running")
            return

        self._running = True
        for tier, config in self.schedules.items():
            self._start_job(tier, config)

        self._log(LogLevel.INFO, f"Backup scheduler started with {len(self._jobs)} active schedules")

    def _start_job(self, tier: str, config: ScheduleConfig):
        if not config.enabled:
            self._log(LogLevel.INFO, f"Schedule {tier} is disabled", tier=tier)
            return

        job = ScheduleJob(tier, config, self._on_fire)
        job.start()
        self._jobs[tier] = job
        self._log(
            LogLevel.INFO,
            f"Scheduled {tier} backups: {config.cron}",
            tier=tier,
            next_run=format_timestamp(job.next_run)
        )

    async def stop(self):
        """Cancel every cron job. Runs already in flight finish on their own."""
        if not self._running:
            return

        self._running = False
        for job in list(self._jobs.values()):
            await job.stop()
        self._jobs.clear()

        self._log(LogLevel.INFO, "Backup scheduler stopped")

    async def shutdown(self):
        """Stop the scheduler and wait for in-flight runs to finish."""
        await self.stop()

        pending = [task for task in self._in_flight.values() if not task.done()]
        if pending:
            self._log(LogLevel.INFO, f"Waiting for {len(pending)} in-flight backups")
            await asyncio.gather(*pending, return_exceptions=True)

    def _on_fire(self, tier: str):
        task = self._in_flight.get(tier)
        if task is not None and not task.done():
            self._log(LogLevel.WARNING, f"Skipping {tier} backup, previous run still in progress", tier=tier)
            return

        task = asyncio.create_task(self.run_scheduled_backup(tier), name=f"backup-run-{tier}")
        self._in_flight[tier] = task
        task.add_done_callback(lambda done, tier=tier: self._clear_in_flight(tier, done))

    def _clear_in_flight(self, tier: str, task: asyncio.Task):
        if self._in_flight.get(tier) is task:
            del self._in_flight[tier]

    def is_in_flight(self, tier: str) -> bool:
        task = self._in_flight.get(tier)
        return task is not None and not task.done()

    async def run_scheduled_backup(self, tier: str) -> BackupRunResult:
        """
        Create a backup for a tier and apply its retention.

        Expired artifacts are deleted only when the new backup succeeded.
        A retention of 0 keeps every artifact of the tier.
        """
        self._log(LogLevel.INFO, f"Running scheduled {tier} backup", tier=tier)
        result = await self._create_backup(tier)

        config = self.schedules.get(tier)
        if result.success and config is not None and config.retention:
            try:
                result.deleted_expired = await self.repository.delete_expired(tier, config.retention)
            except Exception as e:
                self._log(
                    LogLevel.ERROR,
                    f"Retention cleanup failed: {str(e)}",
                    result.backup_id,
                    tier=tier,
                    phase="retention"
                )
        elif result.success:
            self._log(LogLevel.DEBUG, f"Retention disabled for {tier}", result.backup_id, tier=tier)
        else:
            self._log(LogLevel.WARNING, f"Skipping retention cleanup for {tier} after failed backup", tier=tier)

        return result

    async def _create_backup(self, tier: str) -> BackupRunResult:
        artifact: Optional[BackupArtifact] = None
        try:
            artifact = await self.exporter.export(tier)
            persisted = await self.repository.persist(artifact)
        except Exception as e:
            phase = "export" if artifact is None else "persist"
            self._log(
                LogLevel.ERROR,
                f"Backup failed during {phase}: {str(e)}",
                artifact.id if artifact else None,
                tier=tier,
                phase=phase
            )
            result = BackupRunResult(
                success=False,
                tier=tier,
                backup_id=artifact.id if artifact else None,
                error=str(e),
            )
        else:
            result = BackupRunResult(
                success=True,
                tier=tier,
                backup_id=persisted.artifact_id,
                path=persisted.path,
                size_bytes=persisted.size_bytes,
                timestamp=persisted.timestamp,
            )
            self._log(LogLevel.INFO, f"{tier} backup completed", persisted.artifact_id, tier=tier)

        self._last_runs[tier] = result
        return result

    async def trigger_manual(self, tier: Any = BackupTier.MANUAL) -> BackupRunResult:
        """Create a backup now, whether or not the scheduler is running. No retention is applied."""
        tier = normalize_tier(tier)
        self._log(LogLevel.INFO, f"Triggering manual {tier} backup", tier=tier)
        return await self._create_backup(tier)

    async def update_schedule(self, tier: str, **changes: Any) -> ScheduleConfig:
        """
        Change one tier's schedule.

        Only the given fields change. When the scheduler is running, only
        this tier's job is rebuilt. An unknown tier becomes a new schedule
        and then needs a ``cron``.

        Raises:
            SchedulerError: If the resulting schedule is invalid
        """
        try:
            tier = normalize_tier(tier)
        except ValueError as e:
            raise SchedulerError(str(e)) from e

        current = self.schedules.get(tier)
        data = current.model_dump() if current else {}
        data.update({key: value for key, value in changes.items() if value is not None})

        try:
            config = ScheduleConfig.model_validate(data)
        except ValueError as e:
            raise SchedulerError(f"Invalid schedule for {tier}: {str(e)}") from e

        self.schedules[tier] = config

        if self._running:
            job = self._jobs.pop(tier, None)
            if job is not None:
                await job.stop()
            self._start_job(tier, config)

        self._log(LogLevel.INFO, f"Updated {tier} schedule", tier=tier, **config.model_dump())
        return config

    async def test_backup(self) -> TestBackupResult:
        """Create a backup on the test tier and validate it."""
        result = await self._create_backup(BackupTier.TEST.value)
        if not result.success:
            return TestBackupResult(success=False, backup_id=result.backup_id, error=result.error)

        validation = await self.validator.validate(result.backup_id)
        return TestBackupResult(
            success=validation.valid,
            backup_id=result.backup_id,
            validation=validation,
            error=validation.reason,
        )

    def get_status(self) -> Dict[str, Any]:
        """Running flag plus each tier's schedule, next run, and last outcome."""
        schedules = {}
        for tier, config in self.schedules.items():
            job = self._jobs.get(tier)
            last_run = self._last_runs.get(tier)
            schedules[tier] = {
                **config.model_dump(),
                "scheduled": bool(job and job.scheduled),
                "next_run": format_timestamp(job.next_run) if job and job.next_run else None,
                "in_flight": self.is_in_flight(tier),
                "last_run": last_run.model_dump(mode="json") if last_run else None,
            }

        return {
            "running": self._running,
            "schedules": schedules,
        }

    def get_logs(self, tier: Optional[str] = None) -> List[LogEntry]:
        """Get scheduler logs, optionally filtered by tier."""
        if tier:
            return [log for log in self._scheduler_logs if log.tier == tier]
        return list(self._scheduler_logs)
