"""Tests for the local Whisper backend with model loading patched out.

Run with the ``local`` extra installed; skipped otherwise.
"""

from unittest.mock import MagicMock, patch

import pytest

pytest.importorskip("torch")
pytest.importorskip("whisper")

from mediascribe.config import TranscriberConfig  # noqa: E402
from mediascribe.exceptions import BackendError  # noqa: E402
from mediascribe.local_whisper import LocalWhisperTranscriber  # noqa: E402
from mediascribe.transcriber import create_transcriber  # noqa: E402


@pytest.fixture
def audio(tmp_path):
    path = tmp_path / "episode.mp3"
    path.write_bytes(b"ID3 audio")
    return str(path)


@pytest.fixture
def model():
    model = MagicMock()
    model.transcribe.return_value = {"text": "  Hello from Whisper. ", "language": "en"}
    return model


def make_transcriber(model, cuda_available=False, **kwargs):
    with patch("mediascribe.local_whisper.torch.cuda.is_available", return_value=cuda_available), \
            patch("mediascribe.local_whisper.whisper.load_model", return_value=model) as load_model:
        transcriber = LocalWhisperTranscriber(**kwargs)
    return transcriber, load_model


def test_falls_back_to_cpu_without_cuda(model):
    transcriber, load_model = make_transcriber(model, cuda_available=False, model_name="base", device="cuda")

    assert transcriber.device == "cpu"
    load_model.assert_called_once_with("base", device="cpu")


def test_keeps_cuda_when_available(model):
    transcriber, load_model = make_transcriber(model, cuda_available=True, device="cuda")

    assert transcriber.device == "cuda"
    load_model.assert_called_once_with("medium", device="cuda")


def test_rejects_unknown_device(model):
    with pytest.raises(ValueError):
        make_transcriber(model, device="tpu")


def test_maps_hints_and_strips_text(model, audio):
    transcriber, _ = make_transcriber(model, device="cpu")

    text = transcriber.transcribe(audio, language="en", prompt="Names: Ada")

    assert text == "Hello from Whisper."
    model.transcribe.assert_called_once_with(
        audio, language="en", initial_prompt="Names: Ada", fp16=False, verbose=False)


def test_fp16_only_on_cuda(model, audio):
    transcriber, _ = make_transcriber(model, cuda_available=True, device="cuda", fp16=True)

    transcriber.transcribe(audio)

    kwargs = model.transcribe.call_args.kwargs
    assert kwargs["fp16"] is True
    assert kwargs["language"] is None
    assert kwargs["initial_prompt"] is None


def test_model_load_failure_is_a_backend_error():
    with patch("mediascribe.local_whisper.torch.cuda.is_available", return_value=False), \
            patch("mediascribe.local_whisper.whisper.load_model", side_effect=RuntimeError("checksum mismatch")):
        with pytest.raises(BackendError, match="checksum mismatch"):
            LocalWhisperTranscriber(model_name="base", device="cpu")


def test_transcription_failure_is_a_backend_error(model, audio):
    model.transcribe.side_effect = RuntimeError("out of memory")
    transcriber, _ = make_transcriber(model, device="cpu")

    with pytest.raises(BackendError, match="out of memory"):
        transcriber.transcribe(audio)


def test_missing_file_is_a_backend_error(model, tmp_path):
    transcriber, _ = make_transcriber(model, device="cpu")

    with pytest.raises(BackendError, match="not found"):
        transcriber.transcribe(str(tmp_path / "missing.mp3"))
    model.transcribe.assert_not_called()


def test_create_transcriber_builds_local_backend(model):
    config = TranscriberConfig(backend="local", device="cpu", whisper_model="small", whisper_fp16=True)

    with patch("mediascribe.local_whisper.torch.cuda.is_available", return_value=False), \
            patch("mediascribe.local_whisper.whisper.load_model", return_value=model) as load_model:
        transcriber = create_transcriber(config)

    assert isinstance(transcriber, LocalWhisperTranscriber)
    assert transcriber.model_name == "small"
    # fp16 is only requested on CUDA
    assert transcriber.fp16 is False
    load_model.assert_called_once_with("small", device="cpu")
