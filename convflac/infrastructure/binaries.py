import shutil
from typing import Callable, Iterable, List, Optional

Which = Callable[[str], Optional[str]]

# Core tools needed regardless of the input formats
CORE_BINARIES = ("flac",)
TRASH_BINARY = "trash-put"


def find_missing(binaries: Iterable[str], which: Which = shutil.which) -> List[str]:
    """Returns the sorted names from `binaries` that are not on PATH."""
    return sorted({name for name in binaries if not which(name)})
