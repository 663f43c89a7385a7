import logging
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from convflac.config.models import AppConfig, PostAction
from convflac.domain.errors import MissingDependencyError
from convflac.domain.events import ActionMessage, BatchFinished, BatchStarted, MissingBinaries
from convflac.domain.models import InputFile, TranscodeJob
from convflac.infrastructure.binaries import CORE_BINARIES, TRASH_BINARY, Which, find_missing
from convflac.infrastructure.event_bus import EventBus
from convflac.infrastructure.ffprobe import FFprobeAdapter
from convflac.pipeline import registry
from convflac.pipeline.scheduler import JobScheduler
from convflac.pipeline.transcode import TranscodePipeline


class Orchestrator:
    """Converts a batch of input files to FLAC.

    Every file is resolved and checked (format, binaries, lossless probe)
    before the first job is submitted; jobs are then submitted in input
    order. The first fatal job error stops admission; jobs already running
    finish, then the error is re-raised.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        pipeline: TranscodePipeline,
        probe: Optional[FFprobeAdapter] = None,
        which: Which = shutil.which,
    ):
        self.config = config
        self.event_bus = event_bus
        self.pipeline = pipeline
        self.probe = probe or FFprobeAdapter()
        self.which = which
        self.logger = logging.getLogger(__name__)
        self.scheduler = None

    def _check_binaries(self, binaries):
        missing = find_missing(binaries, which=self.which)
        if missing:
            self.logger.error(f"Missing binaries: {', '.join(missing)}")
            self.event_bus.publish(MissingBinaries(missing=missing))
            raise MissingDependencyError(missing)

    def _core_binaries(self) -> List[str]:
        binaries = list(CORE_BINARIES)
        if self.config.general.post_action == PostAction.TRASH:
            binaries.append(TRASH_BINARY)
        return binaries

    def prepare_job(self, path: Path) -> TranscodeJob:
        """Resolves and verifies one input file. No subprocess besides ffprobe runs here."""
        general = self.config.general
        input_file = InputFile.from_path(path)
        spec = registry.resolve_path(input_file.path, use_fallback=general.use_fallback)

        if general.use_fallback and registry.ignores_fallback(spec):
            message = f"ffmpeg is not used for .{spec.extension} files; converting '{path}' with flac"
            self.logger.warning(message)
            self.event_bus.publish(ActionMessage(message=message, warning=True))

        self._check_binaries(registry.required_binaries(spec, general))
        registry.verify_lossless(spec, input_file.path, self.probe)
        return TranscodeJob.create(input_file, spec)

    def prepare_jobs(self, paths: Sequence[Path]) -> List[TranscodeJob]:
        """Prepares every job up front so a bad input aborts before any file is converted."""
        return [self.prepare_job(path) for path in paths]

    def run(self, paths: Sequence[Path]):
        general = self.config.general
        self.logger.info(
            f"Batch started: {len(paths)} file(s), threads={general.threads}, "
            f"compression={general.compression}, post_action={general.post_action.value}"
        )
        self._check_binaries(self._core_binaries())
        jobs = self.prepare_jobs(paths)

        self.scheduler = JobScheduler(general.threads, self.pipeline.run)
        self.event_bus.publish(BatchStarted(files=len(jobs), threads=general.threads))

        try:
            for job in jobs:
                self.scheduler.submit(job)
        except Exception:
            # The join re-raises a job failure first; otherwise the
            # admission error surfaces.
            self._finish()
            raise
        self._finish()

    def _finish(self):
        scheduler = self.scheduler
        try:
            scheduler.join_all()
        finally:
            self.logger.info(
                f"Batch finished: completed={scheduler.completed}, failed={scheduler.failed}, "
                f"peak_running={scheduler.peak_running}"
            )
            self.event_bus.publish(BatchFinished(completed=scheduler.completed, failed=scheduler.failed))
