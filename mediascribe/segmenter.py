"""Splits audio files into time-bounded chunks using ffmpeg."""

import ffmpeg
import math
import os
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from .audio_probe import Prober
from .exceptions import FileSystemError, SegmentationError
from .models import Chunk
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

CHUNK_FILENAME_TEMPLATE = "chunk_{index:04d}.mp3"


class Segmenter(ABC):
    """Abstract base class for audio segmentation."""

    @abstractmethod
    def segment(self, path: str, output_dir: str, target_chunk_seconds: float,
                duration: Optional[float] = None) -> List[Chunk]:
        """
        Splits an audio file into ordered, contiguous chunks.

        Args:
            path: Path to the source audio file.
            output_dir: Directory to write the chunk files into.
            target_chunk_seconds: Maximum duration of each chunk.
            duration: Source duration in seconds if already known; probed
                      otherwise.

        Returns:
            Chunks ordered by sequence_index, starting at 0 with no gaps.

        Raises:
            SegmentationError: If any chunk cannot be extracted. No chunk
                               files are left behind in that case.
            ProbeError: If the source duration cannot be determined.
        """
        pass


def chunk_count(duration: float, target_chunk_seconds: float) -> int:
    """Number of chunks needed to cover ``duration``."""
    return math.ceil(duration / target_chunk_seconds)


class FFmpegSegmenter(Segmenter):
    """Re-encodes each slice to MP3 at a fixed bitrate so chunk sizes stay predictable."""

    def __init__(self, prober: Prober, ffmpeg_path: Optional[str] = None, bitrate: str = "128k"):
        """
        Initializes the FFmpegSegmenter.

        Args:
            prober: Used to find the source duration.
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
            bitrate: Audio bitrate for the re-encoded chunks (e.g. "128k").
        """
        self.prober = prober
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        self.bitrate = bitrate

    def build_chunk_stream(self, source_path: str, chunk_path: str, start: float, duration: Optional[float]):
        """
        Builds the ffmpeg invocation for one chunk.

        Seeking is done after the input (accurate, output-side seek). With
        ``duration`` None the chunk runs to the end of the stream.
        """
        output_kwargs = {
            'ss': start,
            'acodec': 'libmp3lame',
            'audio_bitrate': self.bitrate,
            'vn': None,
        }
        if duration is not None:
            output_kwargs['t'] = duration
        return (
            ffmpeg
            .input(source_path)
            .output(chunk_path, **output_kwargs)
            .global_args('-nostdin')
            .overwrite_output()
        )

    def _extract_chunk(self, source_path: str, chunk_path: str, start: float, duration: Optional[float]) -> None:
        stream = self.build_chunk_stream(source_path, chunk_path, start, duration)
        stream.run(cmd=self.ffmpeg_cmd, capture_stdout=True, capture_stderr=True)

    def segment(self, path: str, output_dir: str, target_chunk_seconds: float,
                duration: Optional[float] = None) -> List[Chunk]:
        if target_chunk_seconds <= 0:
            raise SegmentationError(f"Chunk duration must be positive, got {target_chunk_seconds}")
        try:
            ensure_dir_exists(output_dir)
        except FileSystemError as e:
            raise SegmentationError(f"Cannot use chunk directory {output_dir}: {e}") from e

        if duration is None:
            duration = self.prober.probe_duration(path)
        count = chunk_count(duration, target_chunk_seconds)
        if count == 0:
            raise SegmentationError(f"Audio file has no duration to split: {path}")
        logger.info(f"Splitting {path} ({duration:.1f}s) into {count} chunks of up to {target_chunk_seconds:.0f}s")

        chunks: List[Chunk] = []
        for index in range(count):
            start = index * target_chunk_seconds
            # The last chunk is unbounded so float rounding cannot truncate the tail
            bound = target_chunk_seconds if index < count - 1 else None
            chunk_path = os.path.join(output_dir, CHUNK_FILENAME_TEMPLATE.format(index=index))
            logger.debug(f"Extracting chunk {index + 1}/{count} at {start:.1f}s -> {chunk_path}")
            try:
                self._extract_chunk(path, chunk_path, start, bound)
            except ffmpeg.Error as e:
                stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
                logger.error(f"ffmpeg failed on chunk {index} of {path}: {stderr_output}")
                self._discard(chunks, chunk_path)
                raise SegmentationError(f"ffmpeg failed: {stderr_output}", index=index) from e
            except OSError as e:
                self._discard(chunks, chunk_path)
                raise SegmentationError(f"Could not run {self.ffmpeg_cmd}: {e}", index=index) from e

            if not os.path.isfile(chunk_path):
                self._discard(chunks, chunk_path)
                raise SegmentationError(f"ffmpeg produced no output file {chunk_path}", index=index)
            chunks.append(Chunk(sequence_index=index, start_offset=start, path=chunk_path))

        return chunks

    def _discard(self, chunks: List[Chunk], partial_path: str) -> None:
        """Removes every chunk written so far, including a partial one."""
        for file_path in [c.path for c in chunks] + [partial_path]:
            if os.path.exists(file_path):
                try:
                    os.remove(file_path)
                except OSError as e:
                    logger.warning(f"Could not remove chunk file {file_path}: {e}")
