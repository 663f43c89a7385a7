from pathlib import Path
from typing import List, Sequence


def _strip_wrapping_quotes(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ('"', "'"):
        return trimmed[1:-1]
    return trimmed


def normalize_input_file_entries(entries: Sequence[str]) -> List[str]:
    normalized: List[str] = []
    for entry in entries:
        if entry is None:
            continue
        cleaned = _strip_wrapping_quotes(str(entry))
        if cleaned:
            normalized.append(cleaned)
    return normalized


def dedupe_preserve_order(entries: Sequence[str]) -> List[str]:
    seen = set()
    deduped: List[str] = []
    for entry in entries:
        key = str(Path(entry).resolve(strict=False))
        if key not in seen:
            seen.add(key)
            deduped.append(entry)
    return deduped


def validate_input_files(entries: Sequence[str]) -> List[Path]:
    """Checks that every entry is an existing regular file.

    Raises ValueError for the first offending entry, in input order.
    """
    paths: List[Path] = []
    for entry in entries:
        path = Path(entry)
        if not path.exists():
            raise ValueError(f"'{entry}' does not exist")
        if not path.is_file():
            raise ValueError(f"'{entry}' is not a regular file")
        paths.append(path)
    return paths


def prepare_input_files(entries: Sequence[str]) -> List[Path]:
    """Normalizes, de-duplicates and validates the caller-supplied file list."""
    return validate_input_files(dedupe_preserve_order(normalize_input_file_entries(entries)))
