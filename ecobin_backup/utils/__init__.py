"""
Utility modules for the EcoBin backup engine.
"""

from ecobin_backup.utils.helpers import (
    format_bytes,
    format_timestamp,
    generate_backup_id,
    parse_backup_id,
    parse_timestamp,
    utcnow,
)
from ecobin_backup.utils.logging import LogCategory, LogEntry, LogLevel, get_logger, setup_logging

__all__ = [
    "format_bytes",
    "format_timestamp",
    "generate_backup_id",
    "parse_backup_id",
    "parse_timestamp",
    "utcnow",
    "LogCategory",
    "LogEntry",
    "LogLevel",
    "get_logger",
    "setup_logging",
]
