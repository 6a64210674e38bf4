"""
Helper utilities for the EcoBin backup engine.

This module contains the backup ID and timestamp conventions plus
small file and formatting helpers used throughout the engine.
"""

import json
import re
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml


BACKUP_ID_PREFIX = "backup"

_ID_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
_BACKUP_ID_PATTERN = re.compile(
    r"^backup_(?P<tier>.+)_(?P<stamp>\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z)$"
)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with millisecond precision."""
    moment = _as_utc(moment)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return _as_utc(parsed)


def generate_backup_id(tier: str, created_at: datetime) -> str:
    """
    Generate the backup ID for an artifact.

    The ID embeds the tier and the creation instant with colons and dots
    replaced, e.g. ``backup_daily_2024-01-15T02-00-00-000Z``.
    """
    created_at = _as_utc(created_at)
    millis = created_at.microsecond // 1000
    stamp = f"{created_at.strftime(_ID_TIMESTAMP_FORMAT)}-{millis:03d}Z"
    return f"{BACKUP_ID_PREFIX}_{tier}_{stamp}"


def parse_backup_id(backup_id: str) -> Optional[Tuple[str, datetime]]:
    """
    Split a backup ID into its tier and creation instant.

    Returns:
        ``(tier, created_at)`` or None if the ID does not follow the convention
    """
    match = _BACKUP_ID_PATTERN.match(backup_id)
    if not match:
        return None

    stamp = match.group("stamp")
    base, millis = stamp[:-5], stamp[-4:-1]
    try:
        created_at = datetime.strptime(base, _ID_TIMESTAMP_FORMAT).replace(
            microsecond=int(millis) * 1000, tzinfo=UTC
        )
    except ValueError:
        return None
    return match.group("tier"), created_at


def format_bytes(bytes_count: float) -> str:
    """Format bytes into human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"


def load_config_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Args:
        file_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        if file_path.suffix.lower() in ['.yaml', '.yml']:
            return yaml.safe_load(f) or {}
        elif file_path.suffix.lower() == '.json':
            return json.load(f)
        else:
            raise ValueError(f"Unsupported configuration file format: {file_path.suffix}")


def merge_dicts(dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two dictionaries.

    Args:
        dict1: Base dictionary
        dict2: Dictionary to merge (takes precedence)

    Returns:
        Merged dictionary
    """
    result = dict1.copy()

    for key, value in dict2.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)
