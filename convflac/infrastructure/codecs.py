"""Subprocess stages for the external codec tools.

A stage is one tool invocation. Streaming stages are connected with an OS
pipe (decoder stdout -> encoder stdin); each stage reports its own exit
status so the caller can tell which side of a pipe failed.
"""

import logging
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from convflac.config.models import GeneralConfig

# Exit status reported when a tool could not be started at all
NOT_STARTED = 127


@dataclass(frozen=True)
class Stage:
    name: str
    cmd: Tuple[str, ...]

    @classmethod
    def of(cls, name: str, cmd: Sequence[str]) -> "Stage":
        return cls(name=name, cmd=tuple(str(part) for part in cmd))


@dataclass(frozen=True)
class StageResult:
    name: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def broken_pipe(self) -> bool:
        """Killed by SIGPIPE, i.e. the consumer went away first."""
        return self.returncode == -signal.SIGPIPE


# --------------------------------------------------------------------------
# Command construction
# --------------------------------------------------------------------------

def encoder_command(config: GeneralConfig, output_path: Path, source: Optional[Path] = None) -> List[str]:
    """flac encode of `source` (or stdin) into `output_path`."""
    cmd = ["flac", f"-{config.compression}"]
    if config.overwrite:
        cmd.append("-f")
    if source is None or config.quiet:
        cmd.append("-s")
    cmd.extend(["-o", str(output_path)])
    cmd.append(str(source) if source is not None else "-")
    return cmd


def native_decoder_command(extension: str, source: Path, quiet: bool = False) -> List[str]:
    """Decoder writing raw audio to stdout for the NATIVE_PIPE strategy."""
    if extension == "ape":
        return ["mac", str(source), "-", "-d"]
    if extension == "m4a":
        return ["alac", str(source)]
    if extension == "shn":
        return ["shorten", "-x", str(source), "-"]
    if extension == "tta":
        return ["ttaenc", "-d", "-o", "-", str(source)]
    if extension == "wv":
        cmd = ["wvunpack"]
        if quiet:
            cmd.append("-q")
        return cmd + [str(source), "-o", "-"]
    raise ValueError(f"No native stream decoder for .{extension}")


def alac_validate_command(source: Path) -> List[str]:
    return ["alac", "-t", str(source)]


def flac_decode_command(source: Path, quiet: bool = False) -> List[str]:
    cmd = ["flac", "-d", str(source)]
    if quiet:
        cmd.append("-s")
    return cmd + ["-c"]


def fallback_decode_command(extension: str, source: Path, wav_path: Path) -> List[str]:
    """ffmpeg decode into an uncompressed wav file."""
    cmd = ["ffmpeg", "-nostdin", "-y", "-i", str(source)]
    if extension == "mlp":
        cmd.extend(["-acodec", "pcm_s24le"])
    cmd.extend(["-f", "wav", str(wav_path)])
    return cmd


# --------------------------------------------------------------------------
# Execution
# --------------------------------------------------------------------------

class CodecRunner:
    """Runs codec stages and reports per-stage exit status."""

    def __init__(self, quiet: bool = False, debug: bool = False):
        self.quiet = quiet
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    @property
    def _stderr(self):
        return subprocess.DEVNULL if self.quiet else None

    def _log_command(self, stage: Stage):
        if self.debug:
            self.logger.debug(f"CMD[{stage.name}]: {' '.join(stage.cmd)}")

    def run(self, stage: Stage) -> StageResult:
        """Runs a single file-to-file stage to completion."""
        self._log_command(stage)
        start_time = time.monotonic()
        try:
            process = subprocess.run(
                list(stage.cmd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL if self.quiet else None,
                stderr=self._stderr,
            )
        except OSError as e:
            self.logger.error(f"{stage.name}: could not start {stage.cmd[0]}: {e}")
            return StageResult(stage.name, NOT_STARTED)

        result = StageResult(stage.name, process.returncode)
        self._log_result(result, start_time)
        return result

    def pipe(
        self,
        decoder: Stage,
        encoder: Stage,
        on_decoded: Optional[Callable[[StageResult], None]] = None,
    ) -> Tuple[StageResult, StageResult]:
        """Streams decoder stdout into encoder stdin.

        Both processes are always reaped. `on_decoded` is called once the
        decoder has exited, while the encoder may still be draining.
        """
        self._log_command(decoder)
        self._log_command(encoder)
        start_time = time.monotonic()

        try:
            producer = subprocess.Popen(
                list(decoder.cmd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=self._stderr,
            )
        except OSError as e:
            self.logger.error(f"{decoder.name}: could not start {decoder.cmd[0]}: {e}")
            return StageResult(decoder.name, NOT_STARTED), StageResult(encoder.name, NOT_STARTED)

        try:
            consumer = subprocess.Popen(
                list(encoder.cmd),
                stdin=producer.stdout,
                stderr=self._stderr,
            )
        except OSError as e:
            self.logger.error(f"{encoder.name}: could not start {encoder.cmd[0]}: {e}")
            producer.kill()
            producer.wait()
            if producer.stdout:
                producer.stdout.close()
            return StageResult(decoder.name, producer.returncode), StageResult(encoder.name, NOT_STARTED)

        # The consumer holds the read end now; closing ours lets the producer
        # see SIGPIPE if the consumer exits early.
        if producer.stdout:
            producer.stdout.close()

        decoded = StageResult(decoder.name, producer.wait())
        self._log_result(decoded, start_time)
        try:
            if on_decoded is not None:
                on_decoded(decoded)
        finally:
            encoder_returncode = consumer.wait()

        encoded = StageResult(encoder.name, encoder_returncode)
        self._log_result(encoded, start_time)
        return decoded, encoded

    def _log_result(self, result: StageResult, start_time: float):
        if self.debug:
            elapsed = time.monotonic() - start_time
            self.logger.debug(f"STAGE_END: {result.name} code={result.returncode} elapsed={elapsed:.2f}s")
