"""Transcribes one audio asset, splitting it into chunks when it is too large for the backend."""

import logging
import os
import shutil
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional

from .audio_probe import Prober
from .config import TranscriberConfig
from .exceptions import BackendError, SegmentationError
from .models import AudioAsset, Chunk, ChunkTranscript, TranscriptionMode
from .segmenter import Segmenter
from .transcriber import Transcriber
from .utils import write_text_atomic

logger = logging.getLogger(__name__)

CHUNK_SEPARATOR = "\n\n"


def reassemble(chunk_transcripts: Iterable[ChunkTranscript]) -> str:
    """
    Joins chunk texts into one transcript.

    Texts are ordered by sequence_index, whatever order they arrive in, and
    separated by a blank line. The indices must be exactly 0..n-1.

    Raises:
        ValueError: If indices are duplicated or have gaps.
    """
    ordered = sorted(chunk_transcripts, key=lambda t: t.sequence_index)
    indices = [t.sequence_index for t in ordered]
    if indices != list(range(len(ordered))):
        raise ValueError(f"Chunk transcripts are not contiguous from 0: {indices}")
    return CHUNK_SEPARATOR.join(t.text.strip() for t in ordered).strip()


class ChunkedTranscriber:
    """
    Chooses between direct and chunked transcription for an audio asset and
    commits the finished transcript in a single write.
    """

    def __init__(self, config: TranscriberConfig, transcriber: Transcriber, segmenter: Segmenter,
                 prober: Optional[Prober] = None):
        """
        Initializes the ChunkedTranscriber.

        Args:
            config: Run configuration (size limit, chunk duration, hints).
            transcriber: Backend adapter called once per file or chunk.
            segmenter: Used only for assets above the size limit.
            prober: Reads the asset duration once through the asset's cache.
                    Without it the segmenter probes on its own.
        """
        self.config = config
        self.transcriber = transcriber
        self.segmenter = segmenter
        self.prober = prober

    def choose_mode(self, asset: AudioAsset) -> TranscriptionMode:
        if asset.size_bytes <= self.config.max_single_shot_bytes:
            return TranscriptionMode.DIRECT
        return TranscriptionMode.CHUNKED

    def transcribe_asset(self, asset: AudioAsset, transcript_path: str) -> TranscriptionMode:
        """
        Transcribes ``asset`` and writes the text to ``transcript_path``.

        The transcript file is only written once the whole text is
        available; on any failure it is neither created nor modified.

        Returns:
            The mode that was used.

        Raises:
            BackendError: If a backend call fails; carries the chunk index in
                          chunked mode.
            SegmentationError: If the asset cannot be split.
            ProbeError: If the asset's duration cannot be read.
            FileSystemError: If the transcript cannot be written.
        """
        start_time = time.time()
        mode = self.choose_mode(asset)
        size_mb = asset.size_bytes / (1024 * 1024)
        logger.info(f"Transcribing {asset.path} ({size_mb:.1f} MB) in {mode.value} mode")

        if mode is TranscriptionMode.DIRECT:
            text = self.transcriber.transcribe(asset.path, self.config.language, self.config.prompt)
        else:
            text = self._transcribe_chunked(asset)

        write_text_atomic(transcript_path, text)
        logger.info(f"Transcript saved to: {transcript_path} ({time.time() - start_time:.2f}s)")
        return mode

    def _transcribe_chunked(self, asset: AudioAsset) -> str:
        chunk_dir = tempfile.mkdtemp(prefix="mediascribe_chunks_", dir=self.config.temp_dir)
        try:
            chunks = self._segment_within_limit(asset, chunk_dir)
            transcripts = self._transcribe_chunks(chunks)
            return reassemble(transcripts)
        finally:
            shutil.rmtree(chunk_dir, ignore_errors=True)
            logger.debug(f"Cleaned up chunk directory: {chunk_dir}")

    def _segment_within_limit(self, asset: AudioAsset, chunk_dir: str) -> List[Chunk]:
        """
        Segments the asset, halving the chunk duration while any chunk is
        still above the backend's size limit.
        """
        target = self.config.chunk_duration_seconds
        limit = self.config.max_single_shot_bytes
        # Probed at most once, however many times the asset is re-split
        duration = asset.duration(self.prober) if self.prober else None
        attempts = 0
        while True:
            chunks = self.segmenter.segment(asset.path, chunk_dir, target, duration=duration)
            if not chunks:
                raise SegmentationError(f"Segmentation of {asset.path} produced no chunks")
            oversized = [c for c in chunks if os.path.getsize(c.path) > limit]
            if not oversized:
                logger.info(f"Split {asset.path} into {len(chunks)} chunks of up to {target:.0f}s")
                return chunks

            first = oversized[0]
            if attempts >= self.config.max_resplit_attempts:
                raise SegmentationError(
                    f"{len(oversized)} chunk(s) still exceed {limit} bytes at {target:.0f}s per chunk",
                    index=first.sequence_index,
                )
            attempts += 1
            logger.warning(
                f"Chunk {first.sequence_index} is {os.path.getsize(first.path)} bytes (limit {limit}); "
                f"re-splitting with {target / 2:.0f}s chunks (attempt {attempts}/{self.config.max_resplit_attempts})"
            )
            for chunk in chunks:
                os.remove(chunk.path)
            target /= 2

    def _transcribe_chunks(self, chunks: List[Chunk]) -> List[ChunkTranscript]:
        if self.config.chunk_workers > 1 and len(chunks) > 1:
            return self._transcribe_chunks_concurrently(chunks)

        transcripts = []
        total = len(chunks)
        for chunk in chunks:
            logger.info(f"Transcribing chunk {chunk.sequence_index + 1}/{total}")
            transcripts.append(self._transcribe_chunk(chunk))
        return transcripts

    def _transcribe_chunks_concurrently(self, chunks: List[Chunk]) -> List[ChunkTranscript]:
        """
        Runs chunk calls on a bounded pool. On any failure, chunks that have
        not started are cancelled and the lowest failing index is reported.
        """
        workers = min(self.config.chunk_workers, len(chunks))
        logger.info(f"Transcribing {len(chunks)} chunks with {workers} workers")
        transcripts: List[ChunkTranscript] = []
        failures: Dict[int, Exception] = {}
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self._transcribe_chunk, chunk): chunk for chunk in chunks}
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                try:
                    transcripts.append(future.result())
                except Exception as e:
                    failures[futures[future].sequence_index] = e
                    for pending in futures:
                        pending.cancel()

        if failures:
            raise failures[min(failures)]
        return transcripts

    def _transcribe_chunk(self, chunk: Chunk) -> ChunkTranscript:
        try:
            text = self.transcriber.transcribe(chunk.path, self.config.language, self.config.prompt)
        except BackendError as e:
            logger.error(f"Transcription of chunk {chunk.sequence_index} failed: {e.message}")
            raise BackendError(e.message, index=chunk.sequence_index) from e
        return ChunkTranscript(sequence_index=chunk.sequence_index, text=text)
