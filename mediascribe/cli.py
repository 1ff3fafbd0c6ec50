"""Command-Line Interface handler for MediaScribe."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .audio_probe import FFprobeProber
from .config import TranscriberConfig, load_api_key, require_api_key
from .config_loader import ConfigLoader
from .downloader import RoutingDownloader
from .exceptions import MediaScribeError, ConfigurationError
from .log_setup import setup_logging
from .orchestrator import ChunkedTranscriber
from .pipeline import BatchPipeline
from .resolvers import create_resolver
from .segmenter import FFmpegSegmenter
from .transcriber import create_transcriber
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__) # Get logger for this module

DEFAULT_CONFIG_PATH = "config.yaml"


def read_sources_file(path: str) -> List[str]:
    """
    Reads one source per line, skipping blank lines and '#' comments.

    Raises:
        ConfigurationError: If the file cannot be read.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise ConfigurationError(f"Could not read sources file {path}: {e}") from e
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith('#')]


class CLIHandler:
    """Parses arguments and orchestrates the MediaScribe process."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            description="MediaScribe: Download and transcribe podcast feeds, YouTube videos/channels and local audio files.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter # Show defaults in help
        )
        sources = parser.add_mutually_exclusive_group(required=True)
        sources.add_argument(
            "-s", "--source",
            help="URL of a podcast RSS feed or YouTube video/channel/playlist, or a local audio file."
        )
        sources.add_argument(
            "-f", "--file",
            help="File containing a list of sources (one per line, '#' starts a comment)."
        )
        parser.add_argument(
            "-l", "--language",
            default=None,
            help="Language code of the audio (e.g., 'en'). Auto-detected if omitted."
        )
        parser.add_argument(
            "-p", "--prompt",
            default=None,
            help="Context to improve transcription accuracy (names, jargon)."
        )
        parser.add_argument(
            "-n", "--limit",
            type=int,
            default=None,
            help="Limit the number of episodes/videos to process per source (newest first)."
        )
        parser.add_argument(
            "--api-key",
            default=None,
            help="OpenAI API key. Defaults to OPENAI_API_KEY from the environment or a .env file."
        )
        parser.add_argument(
            "-o", "--output-dir",
            default=None, # Default taken from config file
            help="Output directory for transcripts (config default: podcast-transcripts)."
        )
        parser.add_argument(
            "-c", "--config",
            default=DEFAULT_CONFIG_PATH,
            help="Path to the configuration YAML file. Optional when left at the default."
        )
        parser.add_argument(
            "--temp-dir",
            default=None,
            help="Directory for temporary downloads and chunks. Must exist."
        )
        parser.add_argument(
            "--backend",
            default=None,
            choices=["openai", "local"],
            help="Transcription backend: the OpenAI API or a local Whisper model."
        )
        parser.add_argument(
            "--device",
            default=None, # Default taken from config
            choices=["cuda", "cpu"],
            help="Processing device for the local backend."
        )
        parser.add_argument(
            "--log-level",
            default="INFO",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Set the logging level for console and file output."
        )
        return parser

    def _load_file_config(self, config_path: str) -> dict:
        if config_path == DEFAULT_CONFIG_PATH and not os.path.exists(config_path):
            logger.info(f"No {DEFAULT_CONFIG_PATH} found. Using built-in defaults.")
            return {}
        return ConfigLoader().load_config(config_path)

    def build_config(self, args: argparse.Namespace) -> TranscriberConfig:
        """
        Merges the YAML file, CLI overrides and credentials into one config.

        Raises:
            ConfigurationError: For invalid settings or a missing API key.
            FileNotFoundError: If an explicitly given config file is missing.
        """
        file_config = self._load_file_config(args.config)
        config = TranscriberConfig.from_mapping(
            file_config,
            api_key=load_api_key(args.api_key),
            language=args.language,
            prompt=args.prompt,
            limit=args.limit,
            output_dir=args.output_dir,
            temp_dir=args.temp_dir,
            backend=args.backend,
            device=args.device,
        )
        require_api_key(config)
        return config

    def build_pipeline(self, config: TranscriberConfig) -> BatchPipeline:
        """Wires the components once for the whole run."""
        prober = FFprobeProber(ffprobe_path=config.ffprobe_path)
        segmenter = FFmpegSegmenter(prober, ffmpeg_path=config.ffmpeg_path, bitrate=config.chunk_bitrate)
        transcriber = create_transcriber(config)
        orchestrator = ChunkedTranscriber(config, transcriber, segmenter, prober=prober)
        return BatchPipeline(config, orchestrator, RoutingDownloader.from_config(config), prober)

    def process_sources(self, sources: List[str], config: TranscriberConfig, pipeline: BatchPipeline) -> bool:
        """
        Resolves and processes each source in turn.

        Returns:
            True if every source resolved and every item succeeded.
        """
        all_ok = True
        for i, source in enumerate(sources, start=1):
            logger.info(f"Processing source {i}/{len(sources)}: {source}")
            try:
                listing = create_resolver(source, config).resolve(source)
                report = pipeline.process_listing(listing)
            except MediaScribeError as e:
                logger.error(f"Failed to process source {source}: {e}")
                all_ok = False
                continue
            if not report.all_succeeded:
                all_ok = False
                for outcome in report.failed:
                    logger.warning(f"Not transcribed: '{outcome.item.title}' ({type(outcome.error).__name__}: {outcome.error})")
        return all_ok

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Parses arguments, sets up logging, loads config, and processes the sources.

        Returns:
            Process exit code: 0 on full success, 1 on any failure, 2 on an
            unexpected crash.
        """
        args = self.parser.parse_args(argv)

        log_level = getattr(logging, args.log_level.upper(), logging.INFO)
        # Temporarily setup basic logging to catch config loading errors
        setup_logging(log_level=log_level, log_dir='logs', log_file='mediascribe_init.log')

        try:
            config = self.build_config(args)
        except (ConfigurationError, FileNotFoundError) as e:
            logger.critical(f"Failed to load configuration: {e}")
            return 1

        setup_logging(log_level=log_level, log_dir=config.log_dir, log_file=config.log_file)
        logger.info("Logging re-configured with settings from config file.")

        try:
            sources = [args.source] if args.source else read_sources_file(args.file)
            if not sources:
                logger.warning(f"No sources found in {args.file}. Nothing to do.")
                return 0
            logger.info(f"Found {len(sources)} source(s) to process")

            ensure_dir_exists(config.output_dir)
            pipeline = self.build_pipeline(config)
            all_ok = self.process_sources(sources, config, pipeline)
        except MediaScribeError as e:
            logger.error(f"A MediaScribe error occurred: {e}")
            return 1
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            return 1
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            return 2

        if all_ok:
            logger.info("Media transcription completed successfully!")
            return 0
        logger.warning("Media transcription finished with failures. See the log for details.")
        return 1


def main() -> None:
    sys.exit(CLIHandler().run())
