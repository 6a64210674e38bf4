"""
Command-line interface for the EcoBin backup engine.
"""

from ecobin_backup.cli.main import main

__all__ = ["main"]
