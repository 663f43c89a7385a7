"""Error taxonomy for batch conversion.

Everything derived from ``ConvflacError`` except the tag failures is fatal
for the whole run. Tag failures are caught inside the pipeline and turned
into warnings.
"""

from pathlib import Path
from typing import Iterable, Optional


class ConvflacError(Exception):
    """Base class for all convflac errors."""


class ConfigurationError(ConvflacError):
    """Invalid option value or forbidden option combination."""


class MissingDependencyError(ConvflacError):
    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(set(missing))
        super().__init__(f"cannot find the following binaries: {', '.join(self.missing)}")


class UnsupportedFormatError(ConvflacError):
    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"'{self.path}' is not a supported input format")


class TranscodeFailure(ConvflacError):
    def __init__(self, path: Path, stage: str, returncode: Optional[int] = None, detail: str = ""):
        self.path = Path(path)
        self.stage = stage
        self.returncode = returncode
        message = f"'{self.path}' could not be converted to a FLAC file ({stage}"
        if returncode is not None:
            message += f" exited with code {returncode}"
        message += ")"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class LosslessVerificationFailure(ConvflacError):
    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"'{self.path}' is a lossy WMA. This should not be converted to FLAC.")


class TagReadFailure(ConvflacError):
    """Tags could not be read from the source file."""


class TagWriteFailure(ConvflacError):
    """Tags could not be written to the converted file."""


class TrashFailure(ConvflacError):
    """The trash collaborator refused the file."""


class BatchAborted(ConvflacError):
    """A job failed; no further jobs are admitted."""
