import logging
import subprocess
from pathlib import Path
from convflac.domain.errors import TrashFailure
from convflac.infrastructure.binaries import TRASH_BINARY

class TrashAdapter:
    """Moves files to the desktop trash through trash-cli."""

    def __init__(self, binary: str = TRASH_BINARY):
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    def trash(self, path: Path):
        try:
            result = subprocess.run([self.binary, str(path)], capture_output=True, text=True)
        except OSError as e:
            raise TrashFailure(f"{self.binary} could not be started: {e}") from e
        if result.returncode != 0:
            raise TrashFailure(
                f"{self.binary} failed for {path} (code {result.returncode}): {result.stderr.strip()}"
            )
        self.logger.info(f"TRASHED: {path}")
