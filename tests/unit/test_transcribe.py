from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from src.services import transcribe


class TestIsAvailable:
    def test_disabled_never_loads_model(self) -> None:
        with patch.object(transcribe.settings, "AUDIO_TRANSCRIPTION_ENABLED", False), \
                patch.object(transcribe, "_get_model") as get_model:
            assert transcribe.is_available() is False

        get_model.assert_not_called()

    def test_enabled_without_model(self) -> None:
        with patch.object(transcribe.settings, "AUDIO_TRANSCRIPTION_ENABLED", True), \
                patch.object(transcribe, "_get_model", return_value=None):
            assert transcribe.is_available() is False


class TestTranscribeAudio:
    def test_joins_segments_and_reports_language(self) -> None:
        model = MagicMock()
        segments = [SimpleNamespace(text=" Boil the pasta. "), SimpleNamespace(text="  "), SimpleNamespace(text="Add salt.")]
        model.transcribe.return_value = (iter(segments), SimpleNamespace(language="it"))

        with patch.object(transcribe, "_get_model", return_value=model):
            text, language = transcribe.transcribe_audio("/tmp/audio.m4a", language="en")

        assert text == "Boil the pasta. Add salt."
        assert language == "it"
        assert model.transcribe.call_args.kwargs["language"] == "en"

    def test_no_model(self) -> None:
        with patch.object(transcribe, "_get_model", return_value=None):
            assert transcribe.transcribe_audio("/tmp/audio.m4a") == ("", None)


class TestDevice:
    def test_explicit_cpu(self) -> None:
        with patch.object(transcribe.settings, "WHISPER_DEVICE", "cpu"):
            assert transcribe._device() == ("cpu", "int8")

    def test_explicit_cuda(self) -> None:
        with patch.object(transcribe.settings, "WHISPER_DEVICE", "CUDA"):
            assert transcribe._device() == ("cuda", "float16")
