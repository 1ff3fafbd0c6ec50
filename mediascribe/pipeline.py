"""Runs the transcription of a batch of items, one at a time, isolating failures per item."""

import logging
import os
import tempfile
import time
from typing import List, Optional, Sequence

from tqdm import tqdm

from .audio_probe import Prober
from .config import TranscriberConfig
from .downloader import Downloader
from .exceptions import MediaScribeError, ProbeError
from .models import AudioAsset, BatchReport, ItemOutcome, SourceItem, SourceListing, sort_newest_first
from .orchestrator import ChunkedTranscriber
from .utils import ensure_dir_exists, format_duration, sanitize_name, unique_name, write_text_atomic

logger = logging.getLogger(__name__)

TRANSCRIPT_FILENAME = "transcript.txt"
ITEM_INFO_FILENAMES = {
    "podcast": "episode_info.txt",
    "youtube": "video_info.txt",
    "local": "file_info.txt",
}
CONTAINER_INFO_FILENAMES = {
    "podcast": "podcast_info.txt",
    "youtube": "channel_info.txt",
}
ITEM_UNITS = {"podcast": "episode", "youtube": "video", "local": "file"}


def select_items(items: Sequence[SourceItem], limit: Optional[int]) -> List[SourceItem]:
    """Orders items newest first and keeps at most ``limit`` of them."""
    ordered = sort_newest_first(list(items))
    if limit is not None and len(ordered) > limit:
        logger.info(f"Limiting to {limit} items (out of {len(ordered)})")
        ordered = ordered[:limit]
    return ordered


def assign_directory_names(items: Sequence[SourceItem]) -> List[str]:
    """
    Maps each item to a distinct directory name.

    Titles that sanitize to nothing become ``item_<n>`` (1-based position);
    repeated names get ``_2``, ``_3``... in processing order.
    """
    taken = set()
    names = []
    for position, item in enumerate(items, start=1):
        name = unique_name(sanitize_name(item.title), taken, fallback=f"item_{position}")
        if name != sanitize_name(item.title):
            logger.warning(f"Using directory name '{name}' for '{item.title}'")
        taken.add(name)
        names.append(name)
    return names


def format_item_info(item: SourceItem, duration: Optional[float]) -> str:
    lines = [f"Title: {item.title}"]
    if item.source_url:
        lines.append(f"Source URL: {item.source_url}")
    lines.append(f"Audio URL: {item.audio_location}")
    if item.item_id:
        lines.append(f"ID: {item.item_id}")
    if item.published_at:
        lines.append(f"Published: {item.published_at.isoformat()}")
    if duration is not None:
        lines.append(f"Duration: {format_duration(duration)} ({duration:.0f} seconds)")
    if item.description:
        lines.append(f"Description: {item.description}")
    return "\n".join(lines) + "\n"


def format_container_info(listing: SourceListing) -> str:
    lines = [f"Title: {listing.container_title}", f"Source URL: {listing.source_url}"]
    if listing.container_description:
        lines.append(f"Description: {listing.container_description}")
    for key, value in listing.extra.items():
        lines.append(f"{key}: {value}")
    return "\n".join(lines) + "\n"


class BatchPipeline:
    """
    Downloads and transcribes the items of one source.

    Items are handled strictly one after another. A failure in one item is
    logged and recorded in the report; the batch always continues.
    """

    def __init__(
        self,
        config: TranscriberConfig,
        orchestrator: ChunkedTranscriber,
        downloader: Downloader,
        prober: Prober,
        show_progress: bool = True,
    ):
        self.config = config
        self.orchestrator = orchestrator
        self.downloader = downloader
        self.prober = prober
        self.show_progress = show_progress

    def process_listing(self, listing: SourceListing, limit: Optional[int] = None) -> BatchReport:
        """
        Creates the container directory for a resolved source, writes its
        info file and runs the batch over its items.

        Without a container title the items go straight under the output root.

        Raises:
            FileSystemError: If the container directory cannot be created.
        """
        container_dir = self.config.output_dir
        if listing.container_title:
            container_name = sanitize_name(listing.container_title) or "Unknown"
            container_dir = os.path.join(self.config.output_dir, container_name)
        ensure_dir_exists(container_dir)

        info_filename = CONTAINER_INFO_FILENAMES.get(listing.kind)
        if listing.container_title and info_filename:
            write_text_atomic(os.path.join(container_dir, info_filename), format_container_info(listing))
            logger.debug(f"Saved {listing.kind} info to: {container_dir}")

        effective_limit = limit if limit is not None else self.config.limit
        return self.run(listing.items, container_dir, limit=effective_limit, kind=listing.kind)

    def run(self, items: Sequence[SourceItem], container_dir: str, limit: Optional[int] = None,
            kind: str = "podcast") -> BatchReport:
        """
        Processes the ``limit`` most recent items and reports each outcome.

        Args:
            items: Items of one source.
            container_dir: Parent directory for the per-item directories.
            limit: Maximum number of items, newest first. None means all.
            kind: Source kind, used to name the info files.

        Returns:
            A BatchReport with one outcome per processed item, in order.
        """
        selected = select_items(items, limit)
        names = assign_directory_names(selected)
        unit = ITEM_UNITS.get(kind, "item")
        report = BatchReport()
        batch_start_time = time.time()

        logger.info(f"--- Starting batch transcription of {len(selected)} {unit}s ---")
        with tqdm(total=len(selected), unit=unit, desc="Starting batch", disable=not self.show_progress) as pbar:
            for position, (item, name) in enumerate(zip(selected, names), start=1):
                pbar.set_description(f"Processing: {item.title[:30]}")
                logger.info(f"Processing {unit} {position}/{len(selected)}: {item.title}")
                item_dir = os.path.join(container_dir, name)
                outcome = ItemOutcome(item=item, succeeded=False, output_dir=item_dir)
                try:
                    self._process_item(item, item_dir, kind, outcome)
                    outcome.succeeded = True
                    logger.info(f"Successfully transcribed {unit}: {item.title}")
                except MediaScribeError as e:
                    logger.error(f"Failed to process {unit} '{item.title}' ({item.audio_location}): {e}")
                    outcome.error = e
                except Exception as e:
                    logger.error(f"An unexpected error occurred processing '{item.title}' ({item.audio_location}): {e}", exc_info=True)
                    outcome.error = e
                finally:
                    pbar.update(1)
                report.outcomes.append(outcome)

        logger.info(f"--- Batch finished in {time.time() - batch_start_time:.2f} seconds ---")
        logger.info(f"Successfully processed: {len(report.succeeded)}/{report.total} {unit}s")
        if report.failed:
            logger.info(f"Failed: {len(report.failed)}/{report.total} {unit}s")
        return report

    def _process_item(self, item: SourceItem, item_dir: str, kind: str, outcome: ItemOutcome) -> None:
        with tempfile.TemporaryDirectory(prefix="mediascribe_item_", dir=self.config.temp_dir) as work_dir:
            audio_path = self.downloader.fetch(item.audio_location, work_dir)
            asset = AudioAsset.from_path(audio_path)

            ensure_dir_exists(item_dir)
            info_filename = ITEM_INFO_FILENAMES.get(kind, "item_info.txt")
            write_text_atomic(
                os.path.join(item_dir, info_filename),
                format_item_info(item, self._item_duration(item, asset)),
            )

            transcript_path = os.path.join(item_dir, TRANSCRIPT_FILENAME)
            outcome.mode = self.orchestrator.transcribe_asset(asset, transcript_path)
            outcome.transcript_path = transcript_path

    def _item_duration(self, item: SourceItem, asset: AudioAsset) -> Optional[float]:
        """Advertised duration if the source gave one, otherwise the probed one."""
        if item.duration_seconds is not None:
            return item.duration_seconds
        try:
            return asset.duration(self.prober)
        except ProbeError as e:
            logger.warning(f"Could not determine duration of '{item.title}': {e}")
            return None
