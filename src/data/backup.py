"""SQLite backups.

Copies the live database into BACKUP_DIRECTORY as
backup_YYYYMMDD_HHMMSS.db using SQLite's online backup API, so a copy
taken while the bot is writing is still consistent.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class BackupManager:
    def __init__(self, db_path: str, backup_dir: str) -> None:
        if not db_path:
            raise ValueError("db_path is required")
        if not backup_dir:
            raise ValueError("backup_dir is required")
        self._db_path = db_path
        self._backup_dir = Path(backup_dir)

    def perform_backup(self, now: datetime | None = None) -> Path:
        """Write one backup file and return its path."""
        now = now or datetime.now()
        self._backup_dir.mkdir(parents=True, exist_ok=True)
        target = self._backup_dir / f"backup_{now.strftime('%Y%m%d_%H%M%S')}.db"

        src = sqlite3.connect(self._db_path)
        dst = sqlite3.connect(str(target))
        try:
            with dst:
                src.backup(dst)
        finally:
            dst.close()
            src.close()

        logger.info("Backup created successfully: %s", target)
        return target
