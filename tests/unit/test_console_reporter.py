from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console

from convflac.domain.events import (
    ActionMessage,
    JobCompleted,
    JobFailed,
    JobStarted,
    JobStateChanged,
    MissingBinaries,
    TagsCopied,
    TagWarning,
)
from convflac.domain.models import Disposition, InputFile, JobState, TranscodeJob
from convflac.infrastructure.event_bus import EventBus
from convflac.pipeline.registry import resolve
from convflac.ui.console import ConsoleReporter


@pytest.fixture
def reporter():
    console = Console(record=True, width=200, color_system=None)
    return ConsoleReporter(EventBus(), console)


def output(reporter):
    return reporter.console.export_text()


def make_job(name="track.wv"):
    return TranscodeJob.create(InputFile.from_path(Path(name)), resolve(Path(name).suffix))


def test_job_lifecycle_messages(reporter):
    job = make_job()
    bus = reporter.bus
    bus.publish(JobStarted(job=job))
    bus.publish(JobStateChanged(job=job, previous=JobState.ENCODING, current=JobState.TAGGING))
    bus.publish(TagsCopied(job=job, count=3))
    job.disposition = Disposition.DELETED
    bus.publish(JobCompleted(job=job))

    text = output(reporter)
    assert "Processing 'track.wv'..." in text
    assert "Copying tags... complete (3 fields)" in text
    assert 'Conversion complete - deleted "track.wv"' in text


def test_warnings_and_failures(reporter):
    job = make_job()
    bus = reporter.bus
    bus.publish(TagWarning(job=job, message="tags could not be read from 'track.wv'"))
    bus.publish(ActionMessage(message="ffmpeg is not used for .wav files", warning=True))
    bus.publish(JobFailed(job=job, error_message="boom"))
    bus.publish(MissingBinaries(missing=["mac"]))

    text = output(reporter)
    assert "Warning: tags could not be read from 'track.wv'" in text
    assert "Warning: ffmpeg is not used for .wav files" in text
    assert 'Conversion failed - "track.wv"' in text
    assert "missing: mac" in text


def test_brackets_in_names_are_printed_literally(reporter):
    reporter.bus.publish(JobStarted(job=make_job("[live] track.wv")))
    assert "Processing '[live] track.wv'..." in output(reporter)


@pytest.mark.parametrize("answer", [True, False])
def test_confirm_delete(reporter, answer):
    with patch("convflac.ui.console.Confirm.ask", return_value=answer) as mock_ask:
        assert reporter.confirm_delete(Path("track.wv")) is answer
    assert mock_ask.call_args.kwargs["default"] is False
