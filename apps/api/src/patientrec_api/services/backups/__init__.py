"""Backup job persistence and artifact production."""

from .archive import BackupNotFound, LocalBackupService
from .repository import BackupRepository

__all__ = ["BackupNotFound", "BackupRepository", "LocalBackupService"]
