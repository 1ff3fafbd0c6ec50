"""Transcription on the local machine using OpenAI's open-source Whisper model."""

import whisper
import logging
import torch
from typing import Optional
import os

from .exceptions import BackendError
from .transcriber import Transcriber

logger = logging.getLogger(__name__)


class LocalWhisperTranscriber(Transcriber):
    """Implements transcription using a locally loaded Whisper model."""

    def __init__(self, model_name: str = "medium", device: str = "cuda", fp16: bool = True):
        """
        Initializes the LocalWhisperTranscriber.

        Args:
            model_name: The name of the Whisper model to use (e.g., "base", "medium.en").
            device: The device to run the model on ("cuda" or "cpu").
            fp16: Whether to use float16 precision (faster on compatible GPUs).

        Raises:
            ValueError: If the specified device is invalid.
            BackendError: If the model fails to load.
        """
        self.model_name = model_name
        self.device = device
        self.fp16 = fp16

        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA device requested but not available. Falling back to CPU.")
            self.device = "cpu"
        elif self.device not in ["cuda", "cpu"]:
            raise ValueError(f"Invalid device specified: {self.device}. Choose 'cuda' or 'cpu'.")

        logger.info(f"Initializing LocalWhisperTranscriber with model '{self.model_name}' on device '{self.device}' (FP16: {self.fp16})")
        try:
            self.model = whisper.load_model(self.model_name, device=self.device)
            logger.info(f"Whisper model '{self.model_name}' loaded successfully.")
        except Exception as e:
            logger.error(f"Failed to load Whisper model '{self.model_name}': {e}", exc_info=True)
            raise BackendError(f"Failed to load Whisper model '{self.model_name}': {e}") from e

    def transcribe(self, audio_path: str, language: Optional[str] = None, prompt: Optional[str] = None) -> str:
        logger.info(f"Starting local transcription for: {audio_path}")
        if not os.path.exists(audio_path):
            raise BackendError(f"Audio file not found: {audio_path}")

        try:
            # language=None lets Whisper auto-detect; verbose=False suppresses its progress output
            result = self.model.transcribe(
                audio_path,
                language=language,
                initial_prompt=prompt,
                fp16=self.fp16 if self.device == "cuda" else False,
                verbose=False
            )
        except Exception as e:
            logger.error(f"Error during Whisper transcription process for {audio_path}: {e}", exc_info=True)
            raise BackendError(f"Whisper transcription failed for {audio_path}: {e}") from e

        text = result.get('text')
        if text is None:
            raise BackendError(f"Whisper returned no text for {audio_path}")
        logger.info(f"Transcription completed. Detected language: {result.get('language', 'N/A')}")
        return text.strip()
