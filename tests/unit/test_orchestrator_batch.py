from unittest.mock import MagicMock

import pytest

from convflac.config.models import AppConfig, PostAction
from convflac.domain.errors import (
    ConfigurationError,
    LosslessVerificationFailure,
    MissingDependencyError,
    TranscodeFailure,
    UnsupportedFormatError,
)
from convflac.domain.events import ActionMessage, BatchFinished, BatchStarted, MissingBinaries
from convflac.pipeline.orchestrator import Orchestrator
from convflac.pipeline.transcode import TranscodePipeline


def all_present(name):
    return f"/usr/bin/{name}"


def missing(*names):
    return lambda name: None if name in names else f"/usr/bin/{name}"


@pytest.fixture
def build_orchestrator(general_config, event_bus, fake_codec_runner, fake_tag_tool, fake_trash):
    def _build(codec_runner=None, probe=None, which=all_present, **overrides):
        general = general_config.model_copy(update=overrides) if overrides else general_config
        pipeline = TranscodePipeline(
            config=general,
            event_bus=event_bus,
            codec_runner=codec_runner or fake_codec_runner,
            tag_tool=fake_tag_tool,
            trash=fake_trash,
        )
        return Orchestrator(
            config=AppConfig(general=general),
            event_bus=event_bus,
            pipeline=pipeline,
            probe=probe or MagicMock(),
            which=which,
        )

    return _build


def test_batch_converts_every_file_in_order(build_orchestrator, make_audio_file, fake_codec_runner, recorded_events):
    files = [make_audio_file("b.wav"), make_audio_file("a.wav")]

    build_orchestrator().run(files)

    sources = [stage.cmd[-1] for stage in fake_codec_runner.runs]
    assert sources == [str(files[0]), str(files[1])]
    assert isinstance(recorded_events[0], BatchStarted)
    finished = recorded_events[-1]
    assert isinstance(finished, BatchFinished)
    assert finished.completed == 2 and finished.failed == 0


def test_lossy_wma_fails_before_any_subprocess(build_orchestrator, make_audio_file, fake_codec_runner):
    source = make_audio_file("song.wma")
    probe = MagicMock()
    probe.is_lossless_wma.return_value = False

    with pytest.raises(LosslessVerificationFailure):
        build_orchestrator(probe=probe).run([source])

    assert fake_codec_runner.commands == []
    assert not source.with_suffix(".flac").exists()


def test_lossless_wma_is_converted(build_orchestrator, make_audio_file, fake_codec_runner):
    source = make_audio_file("song.wma")
    probe = MagicMock()
    probe.is_lossless_wma.return_value = True

    build_orchestrator(probe=probe).run([source])

    assert fake_codec_runner.runs[0].cmd[0] == "ffmpeg"


def test_missing_format_binaries(build_orchestrator, make_audio_file, fake_codec_runner, recorded_events):
    source = make_audio_file("song.ape")

    with pytest.raises(MissingDependencyError) as exc_info:
        build_orchestrator(which=missing("mac", "apeinfo")).run([source])

    assert exc_info.value.missing == ["apeinfo", "mac"]
    assert fake_codec_runner.commands == []
    assert any(isinstance(e, MissingBinaries) for e in recorded_events)


def test_missing_flac_fails_before_batch(build_orchestrator, make_audio_file, recorded_events):
    with pytest.raises(MissingDependencyError, match="flac"):
        build_orchestrator(which=missing("flac")).run([make_audio_file("a.wav")])
    assert not any(isinstance(e, BatchStarted) for e in recorded_events)


def test_trash_requires_trash_put(build_orchestrator, make_audio_file):
    with pytest.raises(MissingDependencyError, match="trash-put"):
        build_orchestrator(which=missing("trash-put"), post_action=PostAction.TRASH).run(
            [make_audio_file("a.wav")]
        )


def test_unsupported_file_stops_the_batch_before_any_conversion(
    build_orchestrator, make_audio_file, fake_codec_runner, recorded_events
):
    files = [make_audio_file("a.wav"), make_audio_file("b.mp3"), make_audio_file("c.wav")]

    with pytest.raises(UnsupportedFormatError, match="b.mp3"):
        build_orchestrator().run(files)

    assert fake_codec_runner.commands == []
    assert not any(isinstance(e, BatchStarted) for e in recorded_events)


def test_true_audio_fallback_rejected_before_earlier_files_convert(
    build_orchestrator, make_audio_file, fake_codec_runner
):
    wav = make_audio_file("a.wav")
    tta = make_audio_file("b.tta")

    with pytest.raises(ConfigurationError):
        build_orchestrator(use_fallback=True, post_action=PostAction.DELETE).run([wav, tta])

    assert fake_codec_runner.commands == []
    assert fake_codec_runner.pipes == []
    assert wav.exists()
    assert not wav.with_suffix(".flac").exists()


def test_missing_binary_for_a_later_file_stops_the_batch_up_front(
    build_orchestrator, make_audio_file, fake_codec_runner
):
    files = [make_audio_file("a.wav"), make_audio_file("b.ape")]

    with pytest.raises(MissingDependencyError):
        build_orchestrator(which=missing("mac")).run(files)

    assert fake_codec_runner.commands == []


def test_lossy_wma_later_in_the_list_stops_the_batch_up_front(
    build_orchestrator, make_audio_file, fake_codec_runner
):
    probe = MagicMock()
    probe.is_lossless_wma.return_value = False
    files = [make_audio_file("a.wav"), make_audio_file("b.wma")]

    with pytest.raises(LosslessVerificationFailure):
        build_orchestrator(probe=probe).run(files)

    assert fake_codec_runner.commands == []


def test_job_failure_stops_the_batch(build_orchestrator, make_audio_file, codec_runner_factory, recorded_events):
    runner = codec_runner_factory(codes={"flac": 1})
    files = [make_audio_file("a.wav"), make_audio_file("b.wav")]

    with pytest.raises(TranscodeFailure):
        build_orchestrator(codec_runner=runner).run(files)

    assert len(runner.runs) == 1
    finished = [e for e in recorded_events if isinstance(e, BatchFinished)]
    assert finished[0].failed == 1


def test_fallback_ignored_for_wav_warns(build_orchestrator, make_audio_file, fake_codec_runner, recorded_events):
    build_orchestrator(use_fallback=True).run([make_audio_file("a.wav")])

    warnings = [e for e in recorded_events if isinstance(e, ActionMessage) and e.warning]
    assert "ffmpeg is not used" in warnings[0].message
    assert fake_codec_runner.runs[0].cmd[0] == "flac"


def test_fallback_for_true_audio_is_rejected(build_orchestrator, make_audio_file, fake_codec_runner):
    with pytest.raises(ConfigurationError):
        build_orchestrator(use_fallback=True).run([make_audio_file("a.tta")])
    assert fake_codec_runner.commands == []
