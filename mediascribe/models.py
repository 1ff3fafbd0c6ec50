"""Data models for MediaScribe."""

import enum
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .exceptions import FileSystemError

# Items without a publish date sort after every dated item.
_MIN_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SourceItem:
    """One transcribable unit: a podcast episode, a video or a local file."""
    title: str
    audio_location: str
    published_at: Optional[datetime] = None
    source_url: Optional[str] = None
    description: Optional[str] = None
    duration_seconds: Optional[float] = None
    item_id: Optional[str] = None


@dataclass
class SourceListing:
    """What a resolver returns for one source URL."""
    kind: str  # 'podcast', 'youtube' or 'local'
    source_url: str
    items: List[SourceItem] = field(default_factory=list)
    container_title: Optional[str] = None
    container_description: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)


def _sort_key(item: SourceItem) -> datetime:
    published = item.published_at
    if published is None:
        return _MIN_TIMESTAMP
    if published.tzinfo is None:
        # Naive timestamps are taken as UTC so they compare with aware ones
        return published.replace(tzinfo=timezone.utc)
    return published


def sort_newest_first(items: List[SourceItem]) -> List[SourceItem]:
    """
    Returns the items ordered by publish date, newest first.

    Undated items go last. The sort is stable, so a listing without any
    dates keeps its original order.
    """
    return sorted(items, key=_sort_key, reverse=True)


class AudioAsset:
    """A local audio file with its size and a lazily probed duration."""

    def __init__(self, path: str, size_bytes: int):
        self.path = path
        self.size_bytes = size_bytes
        self._duration: Optional[float] = None

    @classmethod
    def from_path(cls, path: str) -> "AudioAsset":
        try:
            size = os.path.getsize(path)
        except OSError as e:
            raise FileSystemError(f"Could not read audio file {path}: {e}") from e
        return cls(path, size)

    def duration(self, prober) -> float:
        """Probes the duration on first use and caches it."""
        if self._duration is None:
            self._duration = prober.probe_duration(self.path)
        return self._duration

    def __repr__(self) -> str:
        return f"AudioAsset(path={self.path!r}, size_bytes={self.size_bytes})"


@dataclass(frozen=True)
class Chunk:
    """A time-bounded slice of an audio asset."""
    sequence_index: int
    start_offset: float
    path: str


@dataclass(frozen=True)
class ChunkTranscript:
    """Text produced by the backend for one chunk."""
    sequence_index: int
    text: str


class TranscriptionMode(enum.Enum):
    DIRECT = "direct"
    CHUNKED = "chunked"


@dataclass
class ItemOutcome:
    """Result of processing one SourceItem."""
    item: SourceItem
    succeeded: bool
    error: Optional[Exception] = None
    output_dir: Optional[str] = None
    transcript_path: Optional[str] = None
    mode: Optional[TranscriptionMode] = None


@dataclass
class BatchReport:
    """Per-item outcomes of one batch, in processing order."""
    outcomes: List[ItemOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed
