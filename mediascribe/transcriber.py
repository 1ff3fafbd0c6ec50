"""Handles Speech-to-Text transcription of single audio files."""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import openai
from openai import OpenAI

from .config import TranscriberConfig
from .exceptions import BackendError, ConfigurationError

logger = logging.getLogger(__name__)


class Transcriber(ABC):
    """Abstract base class for transcription backends."""

    @abstractmethod
    def transcribe(self, audio_path: str, language: Optional[str] = None, prompt: Optional[str] = None) -> str:
        """
        Transcribes the given audio file.

        Implementations make exactly one attempt; retrying is the caller's
        decision.

        Args:
            audio_path: Path to the audio file.
            language: Optional language code hint (e.g. 'en').
            prompt: Optional free text to steer vocabulary and style.

        Returns:
            The transcript as plain text.

        Raises:
            BackendError: If the backend fails, with its own error text.
        """
        pass


class OpenAIWhisperTranscriber(Transcriber):
    """Implements transcription using the OpenAI audio transcription API."""

    def __init__(self, api_key: str, model: str = "whisper-1", temperature: float = 0.0,
                 timeout: float = 600.0, client: Optional[OpenAI] = None):
        """
        Initializes the OpenAIWhisperTranscriber.

        Args:
            api_key: OpenAI API key.
            model: Transcription model name.
            temperature: Sampling temperature between 0 and 1.
            timeout: Per-request timeout in seconds.
            client: Pre-built client, mainly for tests.
        """
        self.model = model
        self.temperature = temperature
        # SDK retries are disabled: one call per transcribe()
        self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        logger.info(f"Initialized OpenAIWhisperTranscriber with model '{self.model}' (timeout: {timeout}s)")

    def transcribe(self, audio_path: str, language: Optional[str] = None, prompt: Optional[str] = None) -> str:
        logger.info(f"Starting transcription for: {audio_path}")
        if not os.path.isfile(audio_path):
            raise BackendError(f"Audio file not found: {audio_path}")

        params = {
            "model": self.model,
            "response_format": "text",
            "temperature": self.temperature,
        }
        if language:
            params["language"] = language
        if prompt:
            params["prompt"] = prompt

        try:
            with open(audio_path, "rb") as audio_file:
                result = self.client.audio.transcriptions.create(file=audio_file, **params)
        except openai.APIStatusError as e:
            logger.error(f"OpenAI API returned status {e.status_code} for {audio_path}: {e.message}")
            raise BackendError(f"API returned status code {e.status_code}: {e.message}") from e
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API request timed out for {audio_path}")
            raise BackendError(f"Transcription request timed out: {e}") from e
        except openai.OpenAIError as e:
            logger.error(f"OpenAI transcription failed for {audio_path}: {e}")
            raise BackendError(f"Transcription failed: {e}") from e
        except OSError as e:
            raise BackendError(f"Could not read audio file {audio_path}: {e}") from e

        # response_format="text" yields a str; older SDKs return an object with .text
        text = result if isinstance(result, str) else getattr(result, "text", None)
        if text is None:
            raise BackendError(f"Malformed transcription response for {audio_path}: {result!r}")

        logger.info(f"Transcription completed for {audio_path} ({len(text)} characters)")
        return text


def create_transcriber(config: TranscriberConfig) -> Transcriber:
    """
    Builds the backend selected by ``config.backend``.

    Raises:
        ConfigurationError: If the OpenAI backend has no API key.
        BackendError: If the local model cannot be loaded.
    """
    if config.backend == "local":
        # Imported lazily: pulls in torch and the Whisper model code
        from .local_whisper import LocalWhisperTranscriber
        return LocalWhisperTranscriber(
            model_name=config.whisper_model,
            device=config.device,
            fp16=config.whisper_fp16 if config.device == "cuda" else False,
        )
    if not config.api_key:
        raise ConfigurationError("The OpenAI backend needs an API key.")
    return OpenAIWhisperTranscriber(
        api_key=config.api_key,
        model=config.openai_model,
        temperature=config.temperature,
        timeout=config.request_timeout,
    )
