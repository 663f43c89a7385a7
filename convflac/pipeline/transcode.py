"""Per-job conversion state machine.

VALIDATED -> DECODING -> ENCODING -> TAGGING|SKIPPED -> POST_ACTION -> DONE,
with FAILED reachable from DECODING and ENCODING, and from TAGGING or
POST_ACTION when an unexpected error escapes (a closed stdin at the prompt).

The decode path depends on FormatSpec.strategy:

- DIRECT: flac reads the source file itself (WAV)
- NATIVE_PIPE: native decoder stdout -> flac stdin
- FALLBACK_VIA_TEMP_FILE: ffmpeg writes a scratch wav, flac encodes it
- REENCODE_IN_PLACE: FLAC input is renamed to <name>_old.flac, decoded and
  re-encoded to <name>.flac; the rename is undone on any failure
"""

import logging
import os
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from convflac.config.models import GeneralConfig, PostAction
from convflac.domain.errors import (
    TagReadFailure,
    TagWriteFailure,
    TranscodeFailure,
    TrashFailure,
)
from convflac.domain.events import (
    ActionMessage,
    JobCompleted,
    JobFailed,
    JobStarted,
    JobStateChanged,
    StageCompleted,
    TagsCopied,
    TagWarning,
)
from convflac.domain.models import DecodeStrategy, Disposition, JobState, TagSet, TranscodeJob
from convflac.infrastructure.codecs import (
    CodecRunner,
    Stage,
    StageResult,
    alac_validate_command,
    encoder_command,
    fallback_decode_command,
    flac_decode_command,
    native_decoder_command,
)
from convflac.infrastructure.event_bus import EventBus
from convflac.infrastructure.housekeeping import SCRATCH_PREFIX, scratch_directory
from convflac.infrastructure.tag_tools import TagToolAdapter, schema_for
from convflac.infrastructure.trash import TrashAdapter
from convflac.pipeline.tag_normalizer import normalize

DeletePrompt = Callable[[Path], bool]


class TranscodePipeline:
    """Drives a single TranscodeJob from VALIDATED to DONE or FAILED.

    Args:
        config: run-wide options, shared read-only by every job.
        event_bus: receives JobStarted/StateChanged/Completed/Failed etc.
        codec_runner: executes decoder/encoder stages.
        tag_tool: metadata container (tag dump and tag import).
        trash: trash collaborator for the 'trash' post-action.
        prompt: asks the operator whether to delete a source file; required
            for the 'prompt' post-action.
    """

    def __init__(
        self,
        config: GeneralConfig,
        event_bus: EventBus,
        codec_runner: CodecRunner,
        tag_tool: TagToolAdapter,
        trash: Optional[TrashAdapter] = None,
        prompt: Optional[DeletePrompt] = None,
    ):
        if config.post_action == PostAction.PROMPT and prompt is None:
            raise ValueError("prompt post-action needs a prompt callback")
        self.config = config
        self.event_bus = event_bus
        self.codec_runner = codec_runner
        self.tag_tool = tag_tool
        self.trash = trash or TrashAdapter()
        self.prompt = prompt
        self.scratch_dir = scratch_directory(config.scratch_dir)
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, job: TranscodeJob) -> TranscodeJob:
        """Runs `job` to a terminal state. Raises the fatal error on FAILED."""
        start_time = time.monotonic()
        self.logger.info(f"JOB_START: {job.input_file.path} strategy={job.format_spec.strategy.value}")
        self.event_bus.publish(JobStarted(job=job))

        try:
            try:
                self._transcode(job)
            finally:
                self._remove_temp_files(job)
            self._copy_tags(job)
            self._post_action(job)
        except Exception as e:
            job.error_message = str(e) or type(e).__name__
            self._set_state(job, JobState.FAILED)
            job.duration_seconds = time.monotonic() - start_time
            self.logger.error(f"JOB_FAILED: {job.input_file.path}: {job.error_message}")
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
            raise

        self._set_state(job, JobState.DONE)
        job.duration_seconds = time.monotonic() - start_time
        self.logger.info(
            f"JOB_DONE: {job.input_file.path} -> {job.output_path} "
            f"({job.disposition.value if job.disposition else 'kept'}, {job.duration_seconds:.2f}s)"
        )
        self.event_bus.publish(JobCompleted(job=job))
        return job

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _set_state(self, job: TranscodeJob, state: JobState):
        previous = job.state
        if previous == state:
            return
        job.state = state
        if self.config.debug:
            self.logger.debug(f"STATE: {job.name} {previous.value} -> {state.value}")
        self.event_bus.publish(JobStateChanged(job=job, previous=previous, current=state))

    def _stage_done(self, job: TranscodeJob, result: StageResult):
        self.event_bus.publish(StageCompleted(job=job, stage=result.name))

    def _check(self, job: TranscodeJob, result: StageResult, detail: str = ""):
        if not result.ok:
            raise TranscodeFailure(job.input_file.path, result.name, result.returncode, detail)
        self._stage_done(job, result)

    def _check_pipe(self, job: TranscodeJob, decoded: StageResult, encoded: StageResult):
        # A decoder killed by SIGPIPE only means the encoder quit first.
        if not decoded.ok and not (decoded.broken_pipe and not encoded.ok):
            raise TranscodeFailure(job.input_file.path, decoded.name, decoded.returncode)
        self._check(job, encoded)

    # ------------------------------------------------------------------
    # Decode / encode
    # ------------------------------------------------------------------

    def _transcode(self, job: TranscodeJob):
        strategy = job.format_spec.strategy
        output_existed = job.output_path.exists()
        try:
            if strategy == DecodeStrategy.DIRECT:
                self._run_direct(job)
            elif strategy == DecodeStrategy.NATIVE_PIPE:
                self._run_native_pipe(job)
            elif strategy == DecodeStrategy.FALLBACK_VIA_TEMP_FILE:
                self._run_fallback(job)
            elif strategy == DecodeStrategy.REENCODE_IN_PLACE:
                self._run_reencode(job)
            else:
                raise ValueError(f"Unknown decode strategy: {strategy}")
        except Exception:
            if not output_existed:
                self._remove_partial_output(job)
            raise

    def _encode_from_stdin(self, job: TranscodeJob) -> Stage:
        return Stage.of("flac", encoder_command(self.config, job.output_path))

    def _run_direct(self, job: TranscodeJob):
        self._set_state(job, JobState.ENCODING)
        stage = Stage.of("flac", encoder_command(self.config, job.output_path, source=job.source_path))
        self._check(job, self.codec_runner.run(stage))

    def _run_native_pipe(self, job: TranscodeJob):
        extension = job.format_spec.extension
        source = job.source_path
        self._set_state(job, JobState.DECODING)

        if extension == "m4a":
            # .m4a is shared with lossy AAC; make sure this really is ALAC
            result = self.codec_runner.run(Stage.of("alac-check", alac_validate_command(source)))
            self._check(job, result, detail=f"'{source}' is not a valid ALAC file")

        decoder = Stage.of(
            native_decoder_command(extension, source)[0],
            native_decoder_command(extension, source, quiet=self.config.quiet),
        )
        self._pipe(job, decoder, self._encode_from_stdin(job))

    def _pipe(self, job: TranscodeJob, decoder: Stage, encoder: Stage):
        decoded, encoded = self.codec_runner.pipe(
            decoder,
            encoder,
            on_decoded=lambda result: self._set_state(job, JobState.ENCODING),
        )
        self._check_pipe(job, decoded, encoded)

    def _run_fallback(self, job: TranscodeJob):
        extension = job.format_spec.extension
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        wav_path = self.scratch_dir / f"{SCRATCH_PREFIX}{uuid.uuid4().hex[:8]}-{job.input_file.base_name.name}.wav"
        job.temp_files.append(wav_path)

        self._set_state(job, JobState.DECODING)
        decode = Stage.of("ffmpeg", fallback_decode_command(extension, job.source_path, wav_path))
        self._check(job, self.codec_runner.run(decode))

        self._set_state(job, JobState.ENCODING)
        encode = Stage.of("flac", encoder_command(self.config, job.output_path, source=wav_path))
        self._check(job, self.codec_runner.run(encode))

    def _run_reencode(self, job: TranscodeJob):
        original = job.input_file.path
        backup = job.input_file.backup_path
        self._set_state(job, JobState.DECODING)

        if backup.exists() and not self.config.overwrite:
            raise TranscodeFailure(
                original, "rename", detail=f"'{backup}' already exists: could not rename input file"
            )
        try:
            os.replace(original, backup)
        except OSError as e:
            raise TranscodeFailure(original, "rename", detail=str(e)) from e
        job.source_path = backup
        self.logger.debug(f"BACKUP: {original} -> {backup}")

        try:
            decoder = Stage.of("flac-decode", flac_decode_command(backup, quiet=self.config.quiet))
            self._pipe(job, decoder, self._encode_from_stdin(job))
        except Exception:
            self._restore_backup(job, original, backup)
            raise

    def _restore_backup(self, job: TranscodeJob, original: Path, backup: Path):
        self._remove_partial_output(job)
        try:
            os.replace(backup, original)
        except OSError as e:
            self.logger.error(f"Could not restore {backup} to {original}: {e}")
            raise
        job.source_path = original
        self.logger.warning(f"RESTORED: {backup} -> {original}")

    def _remove_partial_output(self, job: TranscodeJob):
        if job.output_path.exists() and job.output_path != job.source_path:
            try:
                job.output_path.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to remove partial output {job.output_path}: {e}")

    def _remove_temp_files(self, job: TranscodeJob):
        for path in job.temp_files:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                self.logger.warning(f"Failed to cleanup temp file {path}: {e}")
        job.temp_files.clear()

    # ------------------------------------------------------------------
    # Tagging
    # ------------------------------------------------------------------

    def _copy_tags(self, job: TranscodeJob):
        spec = job.format_spec
        if not (self.config.copy_tags and spec.supports_tag_extraction):
            self._set_state(job, JobState.SKIPPED)
            return

        self._set_state(job, JobState.TAGGING)
        try:
            tags = self._read_tags(job)
        except TagReadFailure as e:
            self._tag_warning(job, f"tags could not be read from '{job.source_path}': {e}")
            return

        if not tags:
            self._tag_warning(job, f"tags could not be read from '{job.source_path}'")
            return

        try:
            self.tag_tool.import_tags(job.output_path, tags)
        except TagWriteFailure as e:
            self._tag_warning(job, f"tags could not be written to '{job.output_path}': {e}")
            return

        job.tags_written = len(tags)
        self.event_bus.publish(TagsCopied(job=job, count=len(tags)))

    def _read_tags(self, job: TranscodeJob) -> TagSet:
        extension = job.format_spec.extension
        # Vorbis comments are already canonical and may hold multi-line values
        if extension == "flac":
            return self.tag_tool.read_flac_tags(job.source_path)
        raw = self.tag_tool.export_tags(job.source_path, extension)
        return normalize(raw, schema_for(extension))

    def _tag_warning(self, job: TranscodeJob, message: str):
        self.logger.warning(f"TAGS: {message}")
        self.event_bus.publish(TagWarning(job=job, message=message))

    # ------------------------------------------------------------------
    # Post-action
    # ------------------------------------------------------------------

    def _post_action(self, job: TranscodeJob):
        self._set_state(job, JobState.POST_ACTION)
        source = job.source_path
        action = self.config.post_action

        if action == PostAction.PROMPT:
            action = PostAction.DELETE if self.prompt(source) else PostAction.KEEP

        job.disposition = Disposition.KEPT
        if action == PostAction.DELETE:
            try:
                source.unlink()
                job.disposition = Disposition.DELETED
            except OSError as e:
                self._keep_warning(f"could not delete '{source}': {e}")
        elif action == PostAction.TRASH:
            try:
                self.trash.trash(source)
                job.disposition = Disposition.TRASHED
            except TrashFailure as e:
                self._keep_warning(f"could not move '{source}' to the trash: {e}")

    def _keep_warning(self, message: str):
        self.logger.warning(f"POST_ACTION: {message}")
        self.event_bus.publish(ActionMessage(message=message, warning=True))
