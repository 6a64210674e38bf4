"""
Configuration models for the EcoBin backup engine.

This module defines Pydantic models for schedule, mirror, and store
configuration, plus loading settings from YAML/JSON and the environment.
"""

import os
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import croniter
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from ecobin_backup.core.exceptions import ConfigurationError
from ecobin_backup.utils.helpers import load_config_file, merge_dicts


ENV_PREFIX = "ECOBIN_BACKUP_"

MAX_BATCH_SIZE = 500  # hard write-batch limit of the document store

RETENTION_UNITS: Dict[str, timedelta] = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
    "monthly": timedelta(days=30),
}


def retention_window(tier: str, retention: int) -> timedelta:
    """Convert a retention count to a window using the tier's unit (days by default)."""
    unit = RETENTION_UNITS.get(tier, timedelta(days=1))
    return unit * retention


class ScheduleConfig(BaseModel):
    """Cron cadence and retention for one tier."""
    enabled: bool = True
    cron: str
    retention: int = Field(default=30, ge=0)

    @field_validator('cron')
    @classmethod
    def cron_must_be_valid(cls, v):
        v = v.strip()
        if len(v.split()) != 5 or not croniter.croniter.is_valid(v):
            raise ValueError(f'Invalid cron expression: {v}')
        return v

    def retention_window(self, tier: str) -> timedelta:
        """Age beyond which artifacts of ``tier`` expire."""
        return retention_window(tier, self.retention)


def default_schedules() -> Dict[str, ScheduleConfig]:
    """Default hourly/daily/weekly/monthly schedules, evaluated in UTC."""
    return {
        "hourly": ScheduleConfig(cron="0 * * * *", retention=24),
        "daily": ScheduleConfig(cron="0 2 * * *", retention=30),
        "weekly": ScheduleConfig(cron="0 3 * * 0", retention=12),
        "monthly": ScheduleConfig(cron="0 4 1 * *", retention=12),
    }


class MirrorProvider(str, Enum):
    """Remote storage providers an artifact can be mirrored to."""
    NONE = "none"
    GCS = "gcs"
    S3 = "s3"


class MirrorConfig(BaseModel):
    """Remote mirror configuration."""
    provider: MirrorProvider = MirrorProvider.NONE
    bucket: Optional[str] = None
    prefix: str = "backups"
    region: Optional[str] = None
    endpoint_url: Optional[str] = None

    @model_validator(mode='after')
    def bucket_required_for_provider(self):
        if self.provider != MirrorProvider.NONE and not self.bucket:
            raise ValueError(f'Bucket is required for {self.provider.value} mirror')
        return self


class DocumentBackend(str, Enum):
    """Document store implementations."""
    MEMORY = "memory"
    MONGODB = "mongodb"


class TreeBackend(str, Enum):
    """Tree store implementations."""
    MEMORY = "memory"
    REDIS = "redis"


class MongoSettings(BaseModel):
    """MongoDB connection settings for the document store."""
    uri: str = "mongodb://localhost:27017"
    database: str = "ecobin"
    timeout_seconds: int = Field(default=10, ge=1)


class RedisSettings(BaseModel):
    """Redis connection settings for the tree store."""
    url: str = "redis://localhost:6379/0"
    key: str = "ecobin:tree"


class StoreSettings(BaseModel):
    """Which adapters back the two stores."""
    document: DocumentBackend = DocumentBackend.MEMORY
    tree: TreeBackend = TreeBackend.MEMORY
    mongodb: MongoSettings = Field(default_factory=MongoSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)


class BackupSettings(BaseModel):
    """Complete backup engine configuration."""
    backup_dir: Path = Path("backups")
    max_batch_size: int = Field(default=MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)
    schedules: Dict[str, ScheduleConfig] = Field(default_factory=default_schedules)
    mirror: MirrorConfig = Field(default_factory=MirrorConfig)
    stores: StoreSettings = Field(default_factory=StoreSettings)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_known(cls, v):
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f'Unknown log level: {v}')
        return v


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}

    if env.get(f"{ENV_PREFIX}DIR"):
        overrides["backup_dir"] = env[f"{ENV_PREFIX}DIR"]
    if env.get(f"{ENV_PREFIX}LOG_LEVEL"):
        overrides["log_level"] = env[f"{ENV_PREFIX}LOG_LEVEL"]

    mirror: Dict[str, Any] = {}
    if env.get(f"{ENV_PREFIX}MIRROR_PROVIDER"):
        mirror["provider"] = env[f"{ENV_PREFIX}MIRROR_PROVIDER"]
    if env.get(f"{ENV_PREFIX}MIRROR_BUCKET"):
        mirror["bucket"] = env[f"{ENV_PREFIX}MIRROR_BUCKET"]
    if mirror:
        overrides["mirror"] = mirror

    return overrides


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None
) -> BackupSettings:
    """
    Load backup settings from a YAML/JSON file and the environment.

    Schedules given in the file are merged over the defaults, so a file
    only needs to name the fields it changes.

    Args:
        path: Optional configuration file path
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    env = os.environ if env is None else env
    data: Dict[str, Any] = {}

    if path:
        try:
            data = load_config_file(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

    defaults = {
        tier: schedule.model_dump() for tier, schedule in default_schedules().items()
    }
    data["schedules"] = merge_dicts(defaults, data.get("schedules") or {})
    data = merge_dicts(data, _env_overrides(env))

    try:
        return BackupSettings.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
