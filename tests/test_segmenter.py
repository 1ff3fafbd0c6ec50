"""Tests for the ffmpeg segmenter with the ffmpeg invocation stubbed out."""

import os
from unittest.mock import patch

import ffmpeg
import pytest

from conftest import FakeProber
from mediascribe.exceptions import SegmentationError
from mediascribe.segmenter import FFmpegSegmenter, chunk_count


def writing_extractor(calls, fail_at=None):
    """Stand-in for FFmpegSegmenter._extract_chunk that writes a small file."""
    def _extract(self, source_path, chunk_path, start, duration):
        index = len(calls)
        calls.append((chunk_path, start, duration))
        with open(chunk_path, "wb") as f:
            f.write(b"mp3")
        if index == fail_at:
            raise ffmpeg.Error("ffmpeg", b"", b"Invalid data found when processing input")
    return _extract


@pytest.mark.parametrize("duration, target, expected", [
    (3000.0, 1000.0, 3),
    (3000.5, 1000.0, 4),
    (999.0, 1000.0, 1),
    (45.0, 10.0, 5),
])
def test_chunk_count(duration, target, expected):
    assert chunk_count(duration, target) == expected


def test_segment_produces_contiguous_chunks(tmp_path):
    calls = []
    segmenter = FFmpegSegmenter(FakeProber(duration=45.0))
    out_dir = tmp_path / "chunks"

    with patch.object(FFmpegSegmenter, "_extract_chunk", writing_extractor(calls)):
        chunks = segmenter.segment("input.mp3", str(out_dir), 10.0)

    assert [c.sequence_index for c in chunks] == [0, 1, 2, 3, 4]
    assert [c.start_offset for c in chunks] == [0.0, 10.0, 20.0, 30.0, 40.0]
    # Only the last chunk runs to the end of the stream
    assert [call[2] for call in calls] == [10.0, 10.0, 10.0, 10.0, None]
    assert [os.path.basename(c.path) for c in chunks] == [f"chunk_{i:04d}.mp3" for i in range(5)]
    assert all(os.path.isfile(c.path) for c in chunks)


def test_segment_uses_known_duration_without_probing(tmp_path):
    calls = []
    prober = FakeProber(duration=999.0)
    segmenter = FFmpegSegmenter(prober)

    with patch.object(FFmpegSegmenter, "_extract_chunk", writing_extractor(calls)):
        chunks = segmenter.segment("input.mp3", str(tmp_path), 10.0, duration=25.0)

    assert prober.calls == []
    assert len(chunks) == 3
    assert calls[-1][2] is None


def test_segment_failure_reports_index_and_discards_chunks(tmp_path):
    calls = []
    segmenter = FFmpegSegmenter(FakeProber(duration=50.0))
    out_dir = tmp_path / "chunks"

    with patch.object(FFmpegSegmenter, "_extract_chunk", writing_extractor(calls, fail_at=2)):
        with pytest.raises(SegmentationError) as excinfo:
            segmenter.segment("input.mp3", str(out_dir), 10.0)

    assert excinfo.value.index == 2
    assert "Invalid data" in str(excinfo.value)
    assert len(calls) == 3
    assert list(out_dir.iterdir()) == []


def test_segment_missing_output_is_an_error(tmp_path):
    segmenter = FFmpegSegmenter(FakeProber(duration=20.0))

    with patch.object(FFmpegSegmenter, "_extract_chunk", lambda *args: None):
        with pytest.raises(SegmentationError) as excinfo:
            segmenter.segment("input.mp3", str(tmp_path), 10.0)

    assert excinfo.value.index == 0


def test_segment_rejects_non_positive_target(tmp_path):
    with pytest.raises(SegmentationError):
        FFmpegSegmenter(FakeProber()).segment("input.mp3", str(tmp_path), 0)


def test_chunk_command_reencodes_and_bounds_duration():
    segmenter = FFmpegSegmenter(FakeProber(), bitrate="128k")

    args = segmenter.build_chunk_stream("in.m4a", "chunk_0000.mp3", 0.0, 1000.0).get_args()

    assert args[:2] == ["-i", "in.m4a"]
    assert args[args.index("-acodec") + 1] == "libmp3lame"
    assert args[args.index("-b:a") + 1] == "128k"
    assert args[args.index("-t") + 1] == "1000.0"
    assert "-vn" in args
    assert "-nostdin" in args
    assert "-y" in args


def test_last_chunk_command_has_no_duration_bound():
    segmenter = FFmpegSegmenter(FakeProber())

    args = segmenter.build_chunk_stream("in.m4a", "chunk_0002.mp3", 2000.0, None).get_args()

    assert "-t" not in args
    assert args[args.index("-ss") + 1] == "2000.0"
