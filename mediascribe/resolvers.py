"""Turns a source URL into a listing of transcribable items."""

import logging
import os
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional

import requests
import yt_dlp
from defusedxml.ElementTree import ParseError, fromstring

from .config import TranscriberConfig
from .downloader import AUDIO_EXTENSIONS, create_session, is_youtube_url
from .exceptions import ResolutionError
from .models import SourceItem, SourceListing, sort_newest_first
from .utils import is_url

logger = logging.getLogger(__name__)

ITUNES_NS = "{http://www.itunes.com/dtds/podcast-1.0.dtd}"
UNKNOWN_TITLE = "Unknown Title"
LOCAL_FILES_CONTAINER = "local_files"

SINGLE_VIDEO_PATTERNS = [
    re.compile(r"youtube\.com/watch\?(.*&)?v=[\w-]+"),
    re.compile(r"youtu\.be/[\w-]+"),
    re.compile(r"youtube\.com/v/[\w-]+"),
    re.compile(r"youtube\.com/embed/[\w-]+"),
    re.compile(r"youtube\.com/shorts/[\w-]+"),
]
CHANNEL_ROOT_PATTERN = re.compile(r"youtube\.com/(@[\w.-]+|channel/[\w-]+|c/[\w-]+|user/[\w-]+)/?$")


class MediaResolver(ABC):
    """Interface for source metadata lookup."""

    @abstractmethod
    def resolve(self, source: str) -> SourceListing:
        """
        Lists the items of a source, newest first.

        Raises:
            ResolutionError: If the source cannot be reached or understood.
        """
        pass


# --- Podcast feeds ---

def parse_rfc2822(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        logger.debug(f"Unparseable pubDate: {value!r}")
        return None


def parse_itunes_duration(value: Optional[str]) -> Optional[float]:
    """Parses 'SS', 'MM:SS' or 'HH:MM:SS' into seconds."""
    if not value:
        return None
    seconds = 0.0
    try:
        for part in value.strip().split(":"):
            seconds = seconds * 60 + float(part)
    except ValueError:
        return None
    return seconds


def _text(element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def parse_feed(xml_bytes: bytes, feed_url: str) -> SourceListing:
    """
    Parses RSS XML into a listing.

    Items without an ``audio/*`` enclosure are skipped.

    Raises:
        ResolutionError: If the XML is malformed or has no channel.
    """
    try:
        root = fromstring(xml_bytes)
    except ParseError as e:
        raise ResolutionError(f"Invalid RSS feed at {feed_url}: {e}") from e

    channel = root.find("channel")
    if channel is None:
        raise ResolutionError(f"No <channel> element in feed {feed_url}")

    extra = {}
    language = _text(channel, "language")
    if language:
        extra["Language"] = language
    author = _text(channel, f"{ITUNES_NS}author")
    if author:
        extra["Author"] = author

    items: List[SourceItem] = []
    for element in channel.findall("item"):
        title = _text(element, "title") or UNKNOWN_TITLE
        enclosure = element.find("enclosure")
        audio_url = None
        if enclosure is not None and enclosure.get("type", "").startswith("audio/"):
            audio_url = enclosure.get("url")
        if not audio_url:
            logger.warning(f"Skipping episode without audio enclosure: {title}")
            continue
        items.append(SourceItem(
            title=title,
            audio_location=audio_url.strip(),
            published_at=parse_rfc2822(_text(element, "pubDate")),
            source_url=_text(element, "link"),
            description=_text(element, "description") or _text(element, f"{ITUNES_NS}summary"),
            duration_seconds=parse_itunes_duration(_text(element, f"{ITUNES_NS}duration")),
            item_id=_text(element, "guid"),
        ))

    listing = SourceListing(
        kind="podcast",
        source_url=feed_url,
        items=sort_newest_first(items),
        container_title=_text(channel, "title") or UNKNOWN_TITLE,
        container_description=_text(channel, "description"),
        extra=extra,
    )
    logger.info(f"Found podcast: {listing.container_title} with {len(items)} episodes")
    return listing


class PodcastFeedResolver(MediaResolver):
    """Downloads and parses a podcast RSS feed."""

    def __init__(self, session: requests.Session, timeout: float = 60.0):
        self.session = session
        self.timeout = timeout

    def resolve(self, source: str) -> SourceListing:
        logger.info(f"Downloading RSS feed: {source}")
        try:
            resp = self.session.get(source, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch feed {source}: {e}")
            raise ResolutionError(f"Failed to fetch feed {source}: {e}") from e
        return parse_feed(resp.content, source)


# --- YouTube ---

def is_single_video(url: str) -> bool:
    return any(pattern.search(url) for pattern in SINGLE_VIDEO_PATTERNS)


def parse_upload_date(info: dict) -> Optional[datetime]:
    """Prefers the exact timestamp, falling back to the YYYYMMDD upload_date."""
    timestamp = info.get("timestamp")
    if timestamp:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    upload_date = info.get("upload_date")
    if upload_date:
        try:
            return datetime.strptime(upload_date, "%Y%m%d").replace(tzinfo=timezone.utc)
        except ValueError:
            return None
    return None


def video_item_from_info(info: dict) -> SourceItem:
    video_id = info.get("id")
    url = info.get("webpage_url") or info.get("url")
    if not url or not is_url(url):
        url = f"https://www.youtube.com/watch?v={video_id}"
    return SourceItem(
        title=info.get("title") or UNKNOWN_TITLE,
        audio_location=url,
        published_at=parse_upload_date(info),
        source_url=url,
        description=info.get("description"),
        duration_seconds=info.get("duration"),
        item_id=video_id,
    )


class YouTubeResolver(MediaResolver):
    """Lists single videos, channels and playlists with yt-dlp (no download)."""

    def _extract(self, url: str, ydl_opts: dict) -> dict:
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as e:
            logger.error(f"yt-dlp could not read {url}: {e}")
            raise ResolutionError(f"Failed to get video info: {e}") from e
        if not info:
            raise ResolutionError(f"yt-dlp returned no information for {url}")
        return info

    def resolve(self, source: str) -> SourceListing:
        base_opts = {'quiet': True, 'no_warnings': True, 'skip_download': True}
        if is_single_video(source):
            logger.info(f"Processing single YouTube video: {source}")
            info = self._extract(source, dict(base_opts, noplaylist=True))
            return SourceListing(
                kind="youtube",
                source_url=source,
                items=[video_item_from_info(info)],
                container_title=info.get("channel") or info.get("uploader"),
            )

        url = source
        if CHANNEL_ROOT_PATTERN.search(url):
            # A channel root lists its tabs; the uploads live under /videos
            url = url.rstrip("/") + "/videos"
        logger.info(f"Processing YouTube channel or playlist: {url}")
        info = self._extract(url, dict(base_opts, extract_flat='in_playlist'))

        items = []
        for entry in info.get("entries") or []:
            if not entry or not entry.get("id"):
                continue
            items.append(video_item_from_info(entry))
        logger.info(f"Found {len(items)} videos")

        return SourceListing(
            kind="youtube",
            source_url=source,
            items=sort_newest_first(items),
            container_title=info.get("channel") or info.get("uploader") or info.get("title"),
            container_description=info.get("description"),
        )


# --- Local files ---

class LocalFileResolver(MediaResolver):
    """Wraps an existing local audio file as a single item."""

    def resolve(self, source: str) -> SourceListing:
        if not os.path.isfile(source):
            raise ResolutionError(f"File does not exist: {source}")
        extension = os.path.splitext(source)[1].lower()
        if extension not in AUDIO_EXTENSIONS:
            raise ResolutionError(f"Unsupported file format: {extension or '(none)'}")

        stat = os.stat(source)
        item = SourceItem(
            title=os.path.splitext(os.path.basename(source))[0],
            audio_location=os.path.abspath(source),
            published_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            source_url=os.path.abspath(source),
        )
        return SourceListing(
            kind="local",
            source_url=source,
            items=[item],
            container_title=LOCAL_FILES_CONTAINER,
        )


def create_resolver(source: str, config: TranscriberConfig) -> MediaResolver:
    """Picks the resolver for a source: YouTube URL, other URL (RSS feed) or local file."""
    if is_url(source):
        if is_youtube_url(source):
            return YouTubeResolver()
        return PodcastFeedResolver(create_session(config.user_agent), timeout=config.http_timeout)
    return LocalFileResolver()
