"""Immutable run configuration and credential loading."""

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# OpenAI's Whisper endpoint rejects uploads above 25 MiB
DEFAULT_MAX_SINGLE_SHOT_BYTES = 25 * 1024 * 1024
# ~16 MB per chunk at 128 kbit/s
DEFAULT_CHUNK_DURATION_SECONDS = 1000.0
DEFAULT_CHUNK_BITRATE = "128k"
DEFAULT_OUTPUT_DIR = "podcast-transcripts"
DEFAULT_USER_AGENT = "mediascribe/1.0"

SUPPORTED_BACKENDS = ("openai", "local")
API_KEY_ENV_VAR = "OPENAI_API_KEY"

_INT_FIELDS = ("limit", "max_single_shot_bytes", "max_resplit_attempts", "chunk_workers")
_NUMBER_FIELDS = ("temperature", "request_timeout", "chunk_duration_seconds", "http_timeout")


@dataclass(frozen=True)
class TranscriberConfig:
    """
    Settings shared read-only by every component of a run.

    Built once at startup from the YAML file, CLI overrides and the
    environment; core components never read the environment themselves.
    """
    api_key: Optional[str] = None
    backend: str = "openai"
    openai_model: str = "whisper-1"
    temperature: float = 0.0
    request_timeout: float = 600.0

    language: Optional[str] = None
    prompt: Optional[str] = None
    limit: Optional[int] = None

    output_dir: str = DEFAULT_OUTPUT_DIR
    temp_dir: Optional[str] = None

    max_single_shot_bytes: int = DEFAULT_MAX_SINGLE_SHOT_BYTES
    chunk_duration_seconds: float = DEFAULT_CHUNK_DURATION_SECONDS
    chunk_bitrate: str = DEFAULT_CHUNK_BITRATE
    max_resplit_attempts: int = 2
    chunk_workers: int = 1

    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None

    # Local Whisper backend
    whisper_model: str = "medium"
    device: str = "cuda"
    whisper_fp16: bool = True

    http_timeout: float = 60.0
    user_agent: str = DEFAULT_USER_AGENT

    log_dir: str = "logs"
    log_file: str = "mediascribe.log"

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raises ConfigurationError for mistyped or out-of-range settings."""
        self._check_types()
        if self.backend not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Unsupported backend '{self.backend}'. Choose one of: {', '.join(SUPPORTED_BACKENDS)}."
            )
        if self.limit is not None and self.limit < 1:
            raise ConfigurationError(f"limit must be a positive integer, got {self.limit}")
        if self.max_single_shot_bytes <= 0:
            raise ConfigurationError("max_single_shot_bytes must be positive.")
        if self.chunk_duration_seconds <= 0:
            raise ConfigurationError("chunk_duration_seconds must be positive.")
        if self.max_resplit_attempts < 0:
            raise ConfigurationError("max_resplit_attempts cannot be negative.")
        if self.chunk_workers < 1:
            raise ConfigurationError("chunk_workers must be at least 1.")
        if not 0.0 <= self.temperature <= 1.0:
            raise ConfigurationError("temperature must be between 0 and 1.")
        if self.request_timeout <= 0 or self.http_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive.")
        if self.device not in ("cuda", "cpu"):
            raise ConfigurationError(f"Invalid device '{self.device}'. Choose 'cuda' or 'cpu'.")

    def _check_types(self) -> None:
        # YAML hands over whatever scalar was written; bool is an int subclass
        for name in _INT_FIELDS:
            value = getattr(self, name)
            if name == "limit" and value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        for name in _NUMBER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "TranscriberConfig":
        """
        Builds a config from a loaded YAML mapping plus explicit overrides.

        Overrides whose value is None are ignored, so unset CLI options fall
        back to the file and then to the defaults.

        Raises:
            ConfigurationError: On unknown keys or invalid values.
        """
        values = dict(mapping or {})
        values.update({k: v for k, v in overrides.items() if v is not None})

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def replace(self, **changes: Any) -> "TranscriberConfig":
        return dataclasses.replace(self, **changes)


def load_api_key(explicit: Optional[str] = None) -> Optional[str]:
    """
    Finds the OpenAI API key.

    Order: the explicit value (e.g. ``--api-key``), then ``OPENAI_API_KEY``
    from the environment, which may be populated from a ``.env`` file.
    """
    if explicit:
        logger.info("Using OpenAI API key provided via command line")
        return explicit.strip()
    if load_dotenv():
        logger.debug("Loaded environment from .env file")
    key = os.getenv(API_KEY_ENV_VAR)
    return key.strip() if key else None


def require_api_key(config: TranscriberConfig) -> None:
    """Checks that the OpenAI backend has a plausible key before any work starts."""
    if config.backend != "openai":
        return
    if not config.api_key:
        raise ConfigurationError(
            f"API key not found. Set the {API_KEY_ENV_VAR} environment variable or use --api-key."
        )
    if not config.api_key.startswith("sk-"):
        raise ConfigurationError("The OpenAI API key looks invalid (expected it to start with 'sk-').")
