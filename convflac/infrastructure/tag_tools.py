"""Metadata container access: tag dumps from source files, tag import into FLAC."""

import logging
import subprocess
from pathlib import Path
from typing import Dict, List

from mutagen import MutagenError
from mutagen.flac import FLAC

from convflac.domain.errors import TagReadFailure, TagWriteFailure
from convflac.domain.models import TagSchema, TagSet

# Tools that print the tags of a source file on stdout
DUMP_COMMANDS: Dict[str, List[str]] = {
    "ape": ["apeinfo", "-t"],
    "m4a": ["mp4info"],
    "wv": ["wvunpack", "-qss"],
}

DUMP_SCHEMAS: Dict[str, TagSchema] = {
    "ape": TagSchema.CANONICAL,
    "m4a": TagSchema.COLON,
    "wv": TagSchema.EQUALS,
}


def schema_for(extension: str) -> TagSchema:
    try:
        return DUMP_SCHEMAS[extension]
    except KeyError:
        raise ValueError(f"Tags are not supported for .{extension} files") from None


class TagToolAdapter:
    """Reads raw tag dumps and writes normalized tags into FLAC files."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def export_tags(self, path: Path, extension: str) -> str:
        """Returns the raw tag dump of `path`. Raises TagReadFailure."""
        cmd = DUMP_COMMANDS.get(extension)
        if cmd is None:
            raise TagReadFailure(f"tags not supported for .{extension} files")

        try:
            result = subprocess.run(
                [*cmd, str(path)],
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise TagReadFailure(f"{cmd[0]} could not be started: {e}") from e
        if result.returncode != 0:
            raise TagReadFailure(f"{cmd[0]} exited with code {result.returncode} for {path}")
        return result.stdout

    def read_flac_tags(self, path: Path) -> TagSet:
        """Returns the Vorbis comments of `path` exactly as stored. Raises TagReadFailure."""
        try:
            audio = FLAC(str(path))
        except (MutagenError, OSError) as e:
            raise TagReadFailure(f"could not read FLAC tags from {path}: {e}") from e
        if not audio.tags:
            return TagSet()
        return TagSet(items=tuple((key, value) for key, value in audio.tags))

    def import_tags(self, path: Path, tags: TagSet):
        """Appends `tags` to the Vorbis comment block of `path`. Raises TagWriteFailure."""
        try:
            audio = FLAC(str(path))
            if audio.tags is None:
                audio.add_tags()
            for key, value in tags:
                audio.tags.append((key, value))
            audio.save()
        except (MutagenError, OSError, ValueError) as e:
            raise TagWriteFailure(f"tags could not be written to {path}: {e}") from e
        self.logger.debug(f"TAGS_WRITTEN: {path} ({len(tags)} fields)")
