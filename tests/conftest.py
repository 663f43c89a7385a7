import pytest
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock

from convflac.config.models import AppConfig, GeneralConfig
from convflac.domain.models import TagSet
from convflac.infrastructure.codecs import StageResult
from convflac.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def many_processors(monkeypatch):
    """Thread-count validation must not depend on the test machine."""
    monkeypatch.setattr("convflac.config.models.available_processors", lambda: 8)


@pytest.fixture
def general_config(tmp_path):
    """Returns a single-threaded GeneralConfig writing scratch files under tmp_path."""
    return GeneralConfig(
        threads=1,
        compression=5,
        overwrite=False,
        copy_tags=True,
        use_fallback=False,
        scratch_dir=str(tmp_path / "scratch"),
        debug=False,
    )


@pytest.fixture
def sample_config(general_config):
    """Returns a sample AppConfig object for testing."""
    return AppConfig(general=general_config)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Collects every event published on `event_bus`, in order."""
    from convflac.domain.events import Event

    events: List[Event] = []
    original_publish = event_bus.publish

    def publish(event):
        events.append(event)
        original_publish(event)

    event_bus.publish = publish
    return events

# ============================================================================
# Fake audio files
# ============================================================================

@pytest.fixture
def audio_dir(tmp_path):
    directory = tmp_path / "music"
    directory.mkdir()
    return directory


@pytest.fixture
def make_audio_file(audio_dir):
    """Factory creating placeholder source files (contents are never decoded)."""

    def _make(name: str, content: bytes = b"audio") -> Path:
        path = audio_dir / name
        path.write_bytes(content)
        return path

    return _make

# ============================================================================
# Fake codec runner
# ============================================================================

class FakeCodecRunner:
    """Stands in for CodecRunner: records stages, creates outputs, returns scripted codes.

    `codes` maps a stage name to its exit status (default 0). Any stage whose
    command contains ``-o <path>`` (or writes a wav for ffmpeg) gets that file
    created when it succeeds, so the pipeline can find its output.
    """

    def __init__(self, codes: Optional[Dict[str, int]] = None):
        self.codes = codes or {}
        self.runs: List = []
        self.pipes: List = []

    def _code(self, stage) -> int:
        return self.codes.get(stage.name, 0)

    def _touch_output(self, stage):
        cmd = list(stage.cmd)
        if "-o" in cmd:
            target = cmd[cmd.index("-o") + 1]
            if target != "-":
                Path(target).write_bytes(b"fLaC")
        elif cmd and cmd[0] == "ffmpeg":
            Path(cmd[-1]).write_bytes(b"RIFF")

    def run(self, stage):
        self.runs.append(stage)
        result = StageResult(stage.name, self._code(stage))
        if result.ok:
            self._touch_output(stage)
        return result

    def pipe(self, decoder, encoder, on_decoded=None):
        self.pipes.append((decoder, encoder))
        decoded = StageResult(decoder.name, self._code(decoder))
        if on_decoded is not None:
            on_decoded(decoded)
        encoded = StageResult(encoder.name, self._code(encoder))
        # flac leaves a partial file behind even when the stream breaks
        self._touch_output(encoder)
        return decoded, encoded

    @property
    def commands(self) -> List[List[str]]:
        cmds = [list(stage.cmd) for stage in self.runs]
        for decoder, encoder in self.pipes:
            cmds.append(list(decoder.cmd))
            cmds.append(list(encoder.cmd))
        return cmds


@pytest.fixture
def fake_codec_runner():
    return FakeCodecRunner()


@pytest.fixture
def codec_runner_factory():
    """Returns the FakeCodecRunner class for tests that script exit codes."""
    return FakeCodecRunner


@pytest.fixture
def fake_tag_tool():
    tool = MagicMock()
    tool.export_tags.return_value = ""
    tool.read_flac_tags.return_value = TagSet()
    return tool


@pytest.fixture
def fake_trash():
    return MagicMock()
