"""Determines the duration of audio files using ffprobe."""

import ffmpeg
import os
import logging
from abc import ABC, abstractmethod
from typing import Optional

from .exceptions import ProbeError

logger = logging.getLogger(__name__)


class Prober(ABC):
    """Abstract base class for audio inspection."""

    @abstractmethod
    def probe_duration(self, path: str) -> float:
        """
        Returns the duration of the audio file in seconds.

        Raises:
            ProbeError: If the file is unreadable or holds no decodable audio.
        """
        pass


class FFprobeProber(Prober):
    """Reads container and stream durations reported by ffprobe."""

    def __init__(self, ffprobe_path: Optional[str] = None):
        self.ffprobe_cmd = ffprobe_path or 'ffprobe'

    def probe_duration(self, path: str) -> float:
        if not os.path.isfile(path):
            raise ProbeError(f"Audio file not found: {path}")

        try:
            info = ffmpeg.probe(path, cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffprobe failed for {path}: {stderr_output}")
            raise ProbeError(f"ffprobe failed for {path}: {stderr_output}") from e
        except OSError as e:
            raise ProbeError(f"Could not run {self.ffprobe_cmd}: {e}") from e

        duration = _parse_duration(info.get('format', {}).get('duration'))
        if duration is None:
            # Some containers only report per-stream durations
            stream_durations = [
                _parse_duration(stream.get('duration'))
                for stream in info.get('streams', [])
                if stream.get('codec_type') == 'audio'
            ]
            stream_durations = [d for d in stream_durations if d is not None]
            duration = max(stream_durations) if stream_durations else None

        if duration is None or duration <= 0:
            raise ProbeError(f"No audio duration could be determined for {path}")

        logger.debug(f"Probed duration of {path}: {duration:.3f}s")
        return duration


def _parse_duration(value) -> Optional[float]:
    if value in (None, '', 'N/A'):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
