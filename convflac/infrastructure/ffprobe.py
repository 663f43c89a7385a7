import subprocess
import json
from pathlib import Path
from typing import Any, Dict, List

LOSSLESS_WMA_CODEC = "wmalossless"

class FFprobeAdapter:
    """Wrapper around ffprobe to extract audio stream information."""

    def get_stream_info(self, file_path: Path) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            str(file_path)
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"ffprobe failed for {file_path}: {result.stderr}")

        return json.loads(result.stdout)

    def get_audio_codecs(self, file_path: Path) -> List[str]:
        """Returns codec names of all audio streams, in stream order."""
        data = self.get_stream_info(file_path)
        audio_streams = [s for s in data.get("streams", []) if s.get("codec_type") == "audio"]
        if not audio_streams:
            raise ValueError(f"No audio stream found in {file_path}")
        return [str(s.get("codec_name", "unknown")) for s in audio_streams]

    def is_lossless_wma(self, file_path: Path) -> bool:
        return LOSSLESS_WMA_CODEC in self.get_audio_codecs(file_path)
