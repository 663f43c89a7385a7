import logging
import tempfile
import time
from pathlib import Path
from typing import Optional

SCRATCH_PREFIX = "convflac-"


def scratch_directory(configured: Optional[str] = None) -> Path:
    return Path(configured) if configured else Path(tempfile.gettempdir())


class HousekeepingService:
    """Removes scratch files left behind by interrupted runs."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_scratch_files(self, directory: Path, min_age_seconds: float = 6 * 3600) -> int:
        """Removes convflac-* temporary wav files; returns how many were removed.

        Files younger than min_age_seconds may belong to a concurrent run and are left alone.
        """
        removed = 0
        if not directory.is_dir():
            return removed
        cutoff = time.time() - min_age_seconds
        for path in directory.glob(f"{SCRATCH_PREFIX}*.wav"):
            try:
                if path.stat().st_mtime > cutoff:
                    continue
                path.unlink()
                removed += 1
            except OSError as e:
                self.logger.warning(f"Failed to remove stale scratch file {path}: {e}")
        if removed:
            self.logger.info(f"Removed {removed} stale scratch file(s) from {directory}")
        return removed
