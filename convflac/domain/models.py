from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Iterator, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

SUPPORTED_EXTENSIONS = ("ape", "flac", "m4a", "mlp", "shn", "tta", "wav", "wv", "wma")


class DecodeStrategy(str, Enum):
    DIRECT = "DIRECT"
    NATIVE_PIPE = "NATIVE_PIPE"
    FALLBACK_VIA_TEMP_FILE = "FALLBACK_VIA_TEMP_FILE"
    REENCODE_IN_PLACE = "REENCODE_IN_PLACE"


class JobState(str, Enum):
    VALIDATED = "VALIDATED"
    DECODING = "DECODING"
    ENCODING = "ENCODING"
    TAGGING = "TAGGING"
    SKIPPED = "SKIPPED"
    POST_ACTION = "POST_ACTION"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.DONE, JobState.FAILED)

    @property
    def is_active(self) -> bool:
        """True while codec subprocesses may be running for the job."""
        return self in (JobState.DECODING, JobState.ENCODING)


class TagSchema(str, Enum):
    """Shape of a raw tag dump."""

    COLON = "COLON"          # " Key: Value" (mp4info)
    EQUALS = "EQUALS"        # "Key = Value" (wvunpack)
    CANONICAL = "CANONICAL"  # "KEY=Value" (apeinfo)


class Disposition(str, Enum):
    KEPT = "kept"
    DELETED = "deleted"
    TRASHED = "trashed"


class InputFile(BaseModel):
    """A source file as supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    path: Path
    base_name: Path
    extension: str

    @classmethod
    def from_path(cls, path: Path) -> "InputFile":
        path = Path(path)
        return cls(
            path=path,
            base_name=path.with_suffix(""),
            extension=path.suffix[1:].lower(),
        )

    @property
    def output_path(self) -> Path:
        return self.base_name.with_name(f"{self.base_name.name}.flac")

    @property
    def backup_path(self) -> Path:
        return self.base_name.with_name(f"{self.base_name.name}_old.flac")


class FormatSpec(BaseModel):
    """How one input extension gets decoded, tagged and which tools it needs."""

    model_config = ConfigDict(frozen=True)

    extension: str
    description: str
    strategy: DecodeStrategy
    supports_tag_extraction: bool
    required_binaries: FrozenSet[str] = frozenset()
    forces_fallback: bool = False
    fallback_eligible: bool = False
    requires_lossless_probe: bool = False


@dataclass(frozen=True)
class TagSet:
    """Ordered (key, value) pairs; duplicates and ordering are preserved."""

    items: Tuple[Tuple[str, str], ...] = ()

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    def keys(self) -> List[str]:
        return [key for key, _ in self.items]

    def get(self, key: str) -> List[str]:
        return [value for k, value in self.items if k == key]

    def to_lines(self) -> List[str]:
        return [f"{key}={value}" for key, value in self.items]

    def to_text(self) -> str:
        return "".join(f"{line}\n" for line in self.to_lines())


class TranscodeJob(BaseModel):
    input_file: InputFile
    format_spec: FormatSpec
    output_path: Path
    source_path: Path
    state: JobState = JobState.VALIDATED
    temp_files: List[Path] = Field(default_factory=list)
    error_message: Optional[str] = None
    disposition: Optional[Disposition] = None
    tags_written: int = 0
    duration_seconds: Optional[float] = None

    @classmethod
    def create(cls, input_file: InputFile, format_spec: FormatSpec) -> "TranscodeJob":
        return cls(
            input_file=input_file,
            format_spec=format_spec,
            output_path=input_file.output_path,
            source_path=input_file.path,
        )

    @property
    def name(self) -> str:
        return self.input_file.path.name
