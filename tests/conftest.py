"""Shared fixtures and in-memory fakes for MediaScribe tests.

The fakes stand in for ffprobe, ffmpeg, the transcription API and the
network so the pipeline's control flow can be tested without any of them.
"""

import math
import os
from datetime import datetime, timedelta, timezone

import pytest

from mediascribe.audio_probe import Prober
from mediascribe.config import TranscriberConfig
from mediascribe.downloader import Downloader
from mediascribe.exceptions import BackendError, ProbeError, ResolutionError
from mediascribe.models import Chunk, SourceItem
from mediascribe.segmenter import Segmenter
from mediascribe.transcriber import Transcriber

TEST_SIZE_LIMIT = 100
TEST_CHUNK_SECONDS = 10.0


class FakeProber(Prober):
    def __init__(self, duration=42.0, error=None):
        self.duration = duration
        self.error = error
        self.calls = []

    def probe_duration(self, path):
        self.calls.append(path)
        if self.error:
            raise ProbeError(self.error)
        return self.duration


class FakeSegmenter(Segmenter):
    """Writes ``ceil(duration / target)`` small chunk files.

    A duration passed by the caller wins over the one given at construction.
    """

    def __init__(self, duration=50.0, chunk_bytes=10, error=None):
        self.duration = duration
        # int or callable(target_seconds) -> int
        self.chunk_bytes = chunk_bytes
        self.error = error
        self.calls = []
        # Duration handed in by the caller on each call, None when not known
        self.given_durations = []

    def segment(self, path, output_dir, target_chunk_seconds, duration=None):
        self.calls.append((path, output_dir, target_chunk_seconds))
        self.given_durations.append(duration)
        if self.error:
            raise self.error
        size = self.chunk_bytes(target_chunk_seconds) if callable(self.chunk_bytes) else self.chunk_bytes
        chunks = []
        total = duration if duration is not None else self.duration
        for index in range(math.ceil(total / target_chunk_seconds)):
            chunk_path = os.path.join(output_dir, f"chunk_{index:04d}.mp3")
            with open(chunk_path, "wb") as f:
                f.write(b"\0" * size)
            chunks.append(Chunk(index, index * target_chunk_seconds, chunk_path))
        return chunks


class FakeTranscriber(Transcriber):
    """Returns 'text of <file name>'; fails for file names in ``fail_on``."""

    def __init__(self, fail_on=(), texts=None):
        self.fail_on = set(fail_on)
        self.texts = texts or {}
        self.calls = []

    def transcribe(self, audio_path, language=None, prompt=None):
        name = os.path.basename(audio_path)
        self.calls.append((name, language, prompt))
        if name in self.fail_on:
            raise BackendError(f"backend rejected {name}")
        return self.texts.get(name, f"text of {name}")


class FakeDownloader(Downloader):
    """Writes ``payload`` for every location except those in ``fail_on``."""

    def __init__(self, payload=b"audio-bytes", fail_on=()):
        self.payload = payload
        self.fail_on = set(fail_on)
        self.calls = []

    def fetch(self, location, dest_dir):
        self.calls.append(location)
        if location in self.fail_on:
            raise ResolutionError(f"Failed to download {location}")
        path = os.path.join(dest_dir, "episode.mp3")
        with open(path, "wb") as f:
            f.write(self.payload)
        return path


def make_items(count, start=datetime(2024, 1, 31, tzinfo=timezone.utc)):
    """Items numbered 1..count, item 1 being the newest."""
    return [
        SourceItem(
            title=f"Episode {n}",
            audio_location=f"https://example.com/ep{n}.mp3",
            published_at=start - timedelta(days=n),
        )
        for n in range(1, count + 1)
    ]


@pytest.fixture
def work_dirs(tmp_path):
    out = tmp_path / "out"
    tmp = tmp_path / "tmp"
    out.mkdir()
    tmp.mkdir()
    return out, tmp


@pytest.fixture
def config(work_dirs):
    out, tmp = work_dirs
    return TranscriberConfig(
        api_key="sk-test",
        output_dir=str(out),
        temp_dir=str(tmp),
        max_single_shot_bytes=TEST_SIZE_LIMIT,
        chunk_duration_seconds=TEST_CHUNK_SECONDS,
        language="en",
        prompt="A tech podcast",
    )


@pytest.fixture
def audio_file(tmp_path):
    def _make(size, name="input.mp3"):
        path = tmp_path / name
        path.write_bytes(b"\1" * size)
        return str(path)
    return _make
