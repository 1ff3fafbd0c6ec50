"""Tests for reading audio durations through ffprobe."""

from unittest.mock import patch

import ffmpeg
import pytest

from mediascribe.audio_probe import FFprobeProber
from mediascribe.exceptions import ProbeError


@pytest.fixture
def media_file(tmp_path):
    path = tmp_path / "episode.mp3"
    path.write_bytes(b"ID3")
    return str(path)


def test_reads_format_duration(media_file):
    with patch("mediascribe.audio_probe.ffmpeg.probe", return_value={"format": {"duration": "123.45"}}) as probe:
        assert FFprobeProber(ffprobe_path="/opt/ffprobe").probe_duration(media_file) == pytest.approx(123.45)
    probe.assert_called_once_with(media_file, cmd="/opt/ffprobe")


def test_falls_back_to_longest_audio_stream(media_file):
    info = {
        "format": {"duration": "N/A"},
        "streams": [
            {"codec_type": "video", "duration": "500.0"},
            {"codec_type": "audio", "duration": "61.5"},
            {"codec_type": "audio", "duration": "62.0"},
        ],
    }
    with patch("mediascribe.audio_probe.ffmpeg.probe", return_value=info):
        assert FFprobeProber().probe_duration(media_file) == pytest.approx(62.0)


def test_missing_file_is_a_probe_error(tmp_path):
    with pytest.raises(ProbeError):
        FFprobeProber().probe_duration(str(tmp_path / "missing.mp3"))


def test_ffprobe_failure_is_a_probe_error(media_file):
    error = ffmpeg.Error("ffprobe", b"", b"moov atom not found")
    with patch("mediascribe.audio_probe.ffmpeg.probe", side_effect=error):
        with pytest.raises(ProbeError, match="moov atom not found"):
            FFprobeProber().probe_duration(media_file)


@pytest.mark.parametrize("info", [{}, {"format": {"duration": "0"}}, {"format": {}, "streams": []}])
def test_no_usable_duration_is_a_probe_error(media_file, info):
    with patch("mediascribe.audio_probe.ffmpeg.probe", return_value=info):
        with pytest.raises(ProbeError):
            FFprobeProber().probe_duration(media_file)
