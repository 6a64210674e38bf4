"""
Scheduling for the EcoBin backup engine.
"""

from ecobin_backup.scheduler.scheduler import RetentionScheduler, ScheduleJob

__all__ = [
    "RetentionScheduler",
    "ScheduleJob",
]
