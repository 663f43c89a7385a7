"""Rewrites codec tool tag dumps into Vorbis comment fields.

Three dump shapes are understood (see `TagSchema`). Every kept line goes
through the same steps, in order:

1. keep only lines shaped like a tag for the schema
2. strip one leading space
3. normalize the separator to a single ``=``
4. drop an ``of N`` enumeration suffix from numeric values (``3 of 12`` -> ``3``)
5. uppercase the key; the value is left untouched
6. rename aliases (``TRACK`` -> ``TRACKNUMBER`` and friends)

Ordering and duplicate keys are preserved; de-duplication, if any, is the
writer's business.
"""

import re
from typing import Iterable, List, Optional, Tuple

from convflac.domain.models import TagSchema, TagSet

ALIASES = {
    "TRACK": "TRACKNUMBER",
    "YEAR": "DATE",
    "COMMENT": "DESCRIPTION",
    "COMMENTS": "DESCRIPTION",
    "DISK": "DISCNUMBER",
}

SEPARATORS = {
    TagSchema.COLON: ": ",
    TagSchema.EQUALS: " = ",
    TagSchema.CANONICAL: "=",
}

_LINE_SHAPES = {
    TagSchema.COLON: re.compile(r" \w+: "),
    TagSchema.EQUALS: re.compile(r" = "),
    TagSchema.CANONICAL: re.compile(r"^[^=\s][^=]*="),
}

# Only plain "<digits> of <digits>"; values with grouping separators
# ("1,000 of 2,000") are left alone.
_ENUMERATION = re.compile(r"^(\d+) of \d+$")


def _split_line(line: str, schema: TagSchema) -> Optional[Tuple[str, str]]:
    if not _LINE_SHAPES[schema].search(line):
        return None
    if line.startswith(" "):
        line = line[1:]
    key, sep, value = line.partition(SEPARATORS[schema])
    if not sep or not key.strip():
        return None
    return key, value


def strip_enumeration(value: str) -> str:
    match = _ENUMERATION.match(value)
    return match.group(1) if match else value


def canonical_key(key: str) -> str:
    key = key.upper()
    return ALIASES.get(key, key)


def normalize_lines(lines: Iterable[str], schema: TagSchema) -> TagSet:
    items: List[Tuple[str, str]] = []
    for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        pair = _split_line(line, schema)
        if pair is None:
            continue
        key, value = pair
        if schema != TagSchema.CANONICAL:
            value = strip_enumeration(value)
        items.append((canonical_key(key), value))
    return TagSet(items=tuple(items))


def normalize(raw: str, schema: TagSchema) -> TagSet:
    """Normalizes a raw tag dump. An empty TagSet means nothing usable was found."""
    return normalize_lines(raw.split("\n"), schema)
