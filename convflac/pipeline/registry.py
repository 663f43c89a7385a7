"""Format registry: extension -> FormatSpec.

The table is closed; every supported input format has exactly one entry and
`resolve` only derives a variant of it depending on whether the ffmpeg
fallback decoder was requested.
"""

import logging
from pathlib import Path
from typing import Dict, FrozenSet, Set

from convflac.config.models import GeneralConfig
from convflac.domain.errors import (
    ConfigurationError,
    LosslessVerificationFailure,
    UnsupportedFormatError,
)
from convflac.domain.models import DecodeStrategy, FormatSpec
from convflac.infrastructure.binaries import CORE_BINARIES
from convflac.infrastructure.ffprobe import FFprobeAdapter

logger = logging.getLogger(__name__)

FALLBACK_BINARIES = frozenset({"ffmpeg"})

FORMATS: Dict[str, FormatSpec] = {
    "ape": FormatSpec(
        extension="ape",
        description="Monkey's Audio",
        strategy=DecodeStrategy.NATIVE_PIPE,
        supports_tag_extraction=True,
        required_binaries=frozenset({"mac"}),
        fallback_eligible=True,
    ),
    "flac": FormatSpec(
        extension="flac",
        description="FLAC",
        strategy=DecodeStrategy.REENCODE_IN_PLACE,
        supports_tag_extraction=True,
    ),
    "m4a": FormatSpec(
        extension="m4a",
        description="Apple Lossless",
        strategy=DecodeStrategy.NATIVE_PIPE,
        supports_tag_extraction=True,
        required_binaries=frozenset({"alac"}),
        fallback_eligible=True,
    ),
    "mlp": FormatSpec(
        extension="mlp",
        description="Meridian Lossless Packing",
        strategy=DecodeStrategy.FALLBACK_VIA_TEMP_FILE,
        supports_tag_extraction=False,
        required_binaries=FALLBACK_BINARIES,
        forces_fallback=True,
        fallback_eligible=True,
    ),
    "shn": FormatSpec(
        extension="shn",
        description="Shorten",
        strategy=DecodeStrategy.NATIVE_PIPE,
        supports_tag_extraction=False,
        required_binaries=frozenset({"shorten"}),
        fallback_eligible=True,
    ),
    "tta": FormatSpec(
        extension="tta",
        description="True Audio",
        strategy=DecodeStrategy.NATIVE_PIPE,
        supports_tag_extraction=False,
        required_binaries=frozenset({"ttaenc"}),
    ),
    "wav": FormatSpec(
        extension="wav",
        description="WAV",
        strategy=DecodeStrategy.DIRECT,
        supports_tag_extraction=False,
    ),
    "wv": FormatSpec(
        extension="wv",
        description="WavPack",
        strategy=DecodeStrategy.NATIVE_PIPE,
        supports_tag_extraction=True,
        required_binaries=frozenset({"wvunpack"}),
        fallback_eligible=True,
    ),
    "wma": FormatSpec(
        extension="wma",
        description="Windows Media Audio Lossless",
        strategy=DecodeStrategy.FALLBACK_VIA_TEMP_FILE,
        supports_tag_extraction=False,
        required_binaries=FALLBACK_BINARIES | {"ffprobe"},
        forces_fallback=True,
        fallback_eligible=True,
        requires_lossless_probe=True,
    ),
}

# Extra tools needed only to read tags from the source file
TAG_BINARIES: Dict[str, FrozenSet[str]] = {
    "ape": frozenset({"apeinfo"}),
    "m4a": frozenset({"mp4info"}),
}


def normalize_extension(extension: str) -> str:
    return extension.lower().lstrip(".")


def resolve(extension: str, use_fallback: bool = False) -> FormatSpec:
    """Returns the FormatSpec for `extension` (case-insensitive).

    With `use_fallback`, eligible formats are switched to the ffmpeg temp-file
    strategy and lose tag extraction. Raises UnsupportedFormatError for
    unknown extensions and ConfigurationError when the fallback decoder is
    requested for True Audio.
    """
    key = normalize_extension(extension)
    try:
        spec = FORMATS[key]
    except KeyError:
        raise UnsupportedFormatError(Path(f"*.{key}")) from None

    if spec.forces_fallback or not use_fallback:
        return spec

    if key == "tta":
        raise ConfigurationError("ffmpeg does not support True Audio (.tta) files")
    if not eligible_for_fallback(spec):
        return spec

    return spec.model_copy(update={
        "strategy": DecodeStrategy.FALLBACK_VIA_TEMP_FILE,
        "supports_tag_extraction": False,
        "required_binaries": FALLBACK_BINARIES,
    })


def resolve_path(path: Path, use_fallback: bool = False) -> FormatSpec:
    try:
        return resolve(Path(path).suffix, use_fallback=use_fallback)
    except UnsupportedFormatError:
        raise UnsupportedFormatError(path) from None


def eligible_for_fallback(spec: FormatSpec) -> bool:
    return spec.fallback_eligible


def ignores_fallback(spec: FormatSpec) -> bool:
    """True for formats that are never decoded by ffmpeg (FLAC, WAV)."""
    return not spec.fallback_eligible and spec.extension != "tta"


def required_binaries(spec: FormatSpec, config: GeneralConfig) -> Set[str]:
    """Tools needed to convert one file of this format under `config`."""
    binaries = set(CORE_BINARIES) | set(spec.required_binaries)
    if config.copy_tags and spec.supports_tag_extraction:
        binaries |= TAG_BINARIES.get(spec.extension, frozenset())
    return binaries


def verify_lossless(spec: FormatSpec, path: Path, probe: FFprobeAdapter):
    """Refuses lossy sources for formats that may be either (WMA).

    Runs before any decode subprocess; a probe that cannot read the file
    counts as a failed verification.
    """
    if not spec.requires_lossless_probe:
        return
    try:
        lossless = probe.is_lossless_wma(path)
    except (RuntimeError, ValueError, OSError) as e:
        logger.error(f"Stream probe failed for {path}: {e}")
        lossless = False
    if not lossless:
        raise LosslessVerificationFailure(path)
