"""Fetches item audio into a local file: HTTP downloads, YouTube audio and local passthrough."""

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlparse

import requests
import yt_dlp
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import TranscriberConfig
from .exceptions import ResolutionError
from .utils import is_url

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 256
HTTP_RETRY_TOTAL = 5
HTTP_BACKOFF_FACTOR = 0.5
HTTP_RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

# Extensions the transcription API recognises; the downloaded file keeps one of these
AUDIO_EXTENSIONS = (".mp3", ".m4a", ".mp4", ".mpeg", ".mpga", ".wav", ".webm", ".ogg", ".oga", ".flac", ".aac")
DEFAULT_AUDIO_EXTENSION = ".mp3"

YOUTUBE_URL_PATTERN = re.compile(r"^https?://([\w-]+\.)?(youtube\.com|youtu\.be)/", re.IGNORECASE)


def is_youtube_url(url: str) -> bool:
    return bool(YOUTUBE_URL_PATTERN.match(url))


def create_session(user_agent: str) -> requests.Session:
    """Builds a requests session that retries transient HTTP failures."""
    retry = Retry(
        total=HTTP_RETRY_TOTAL,
        backoff_factor=HTTP_BACKOFF_FACTOR,
        status_forcelist=HTTP_RETRY_STATUS_CODES,
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": user_agent})
    return session


def audio_extension_for(url: str) -> str:
    """Picks a file extension for a downloaded URL, defaulting to .mp3."""
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    return ext if ext in AUDIO_EXTENSIONS else DEFAULT_AUDIO_EXTENSION


class Downloader(ABC):
    """Interface for fetching audio into a local directory."""

    @abstractmethod
    def fetch(self, location: str, dest_dir: str) -> str:
        """
        Makes the audio at ``location`` available as a local file.

        Args:
            location: URL or local path of the audio.
            dest_dir: Directory owned by the caller for downloaded files.

        Returns:
            Path to the local audio file.

        Raises:
            ResolutionError: If the audio cannot be fetched.
        """
        pass


class HttpDownloader(Downloader):
    """Streams a URL to disk."""

    def __init__(self, session: requests.Session, timeout: float = 60.0, basename: str = "episode"):
        self.session = session
        self.timeout = timeout
        self.basename = basename

    def fetch(self, location: str, dest_dir: str) -> str:
        output_path = os.path.join(dest_dir, self.basename + audio_extension_for(location))
        logger.info(f"Downloading {location} -> {output_path}")
        try:
            with self.session.get(location, timeout=self.timeout, stream=True) as resp:
                resp.raise_for_status()
                total = 0
                with open(output_path, "wb") as f:
                    for block in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if block:
                            f.write(block)
                            total += len(block)
        except requests.RequestException as e:
            logger.error(f"Failed to download {location}: {e}")
            raise ResolutionError(f"Failed to download {location}: {e}") from e
        except OSError as e:
            raise ResolutionError(f"Could not write download to {output_path}: {e}") from e

        if total == 0:
            raise ResolutionError(f"Downloaded file from {location} is empty")
        logger.info(f"Downloaded {total / (1024 * 1024):.1f} MB from {location}")
        return output_path


class YtDlpDownloader(Downloader):
    """Downloads the best audio stream of a video and converts it to MP3."""

    def __init__(self, ffmpeg_path: Optional[str] = None, basename: str = "audio"):
        self.ffmpeg_path = ffmpeg_path
        self.basename = basename

    def build_options(self, dest_dir: str) -> dict:
        ydl_opts = {
            'format': 'bestaudio/best',
            'outtmpl': os.path.join(dest_dir, f"{self.basename}.%(ext)s"),
            'noplaylist': True,
            'quiet': True,
            'no_warnings': True,
            'postprocessors': [{
                'key': 'FFmpegExtractAudio',
                'preferredcodec': 'mp3',
                'preferredquality': '0',
            }],
        }
        if self.ffmpeg_path:
            ydl_opts['ffmpeg_location'] = self.ffmpeg_path
        return ydl_opts

    def fetch(self, location: str, dest_dir: str) -> str:
        logger.info(f"Downloading audio for video: {location}")
        with yt_dlp.YoutubeDL(self.build_options(dest_dir)) as ydl:
            try:
                ydl.download([location])
            except yt_dlp.utils.DownloadError as e:
                logger.error(f"yt-dlp failed for {location}: {e}")
                raise ResolutionError(f"Failed to download video audio: {e}") from e

        output_path = os.path.join(dest_dir, f"{self.basename}.mp3")
        if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
            raise ResolutionError(f"Downloaded audio not found for {location}")
        return output_path


class RoutingDownloader(Downloader):
    """
    Chooses how to fetch each location: YouTube pages through yt-dlp, other
    URLs over HTTP, and existing local files are used in place.
    """

    def __init__(self, http: Downloader, youtube: Downloader):
        self.http = http
        self.youtube = youtube

    @classmethod
    def from_config(cls, config: TranscriberConfig) -> "RoutingDownloader":
        session = create_session(config.user_agent)
        return cls(
            http=HttpDownloader(session, timeout=config.http_timeout),
            youtube=YtDlpDownloader(ffmpeg_path=config.ffmpeg_path),
        )

    def fetch(self, location: str, dest_dir: str) -> str:
        if is_url(location):
            if is_youtube_url(location):
                return self.youtube.fetch(location, dest_dir)
            return self.http.fetch(location, dest_dir)
        if os.path.isfile(location):
            # Local sources are read in place and never copied into dest_dir
            return location
        raise ResolutionError(f"Audio location is neither a URL nor an existing file: {location}")
