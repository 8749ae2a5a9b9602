from __future__ import annotations

import os
from array import array
from unittest.mock import MagicMock

from turnspeak.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber


def _fake_model(*texts: str) -> MagicMock:
    fake_model = MagicMock()
    segments = [MagicMock(text=t) for t in texts]
    fake_model.transcribe.return_value = (segments, MagicMock())
    return fake_model


def test_transcribe_joins_segment_text(monkeypatch) -> None:
    fake_model = _fake_model(" Hello", "", "world. ")
    tr = FasterWhisperPCM16Transcriber(model_size="base")
    monkeypatch.setattr(tr, "_get_model", lambda: fake_model)

    pcm16 = array("h", [1000, -1000] * 800).tobytes()
    out = tr.transcribe(pcm16, sample_rate=16000, channels=1, language="hi")

    assert out == "Hello world."
    audio = fake_model.transcribe.call_args.args[0]
    assert audio.dtype.name == "float32"
    assert len(audio) == 1600
    assert fake_model.transcribe.call_args.kwargs["language"] == "hi"


def test_transcribe_uses_default_language_and_first_channel(monkeypatch) -> None:
    fake_model = _fake_model("bonjour")
    tr = FasterWhisperPCM16Transcriber(model_size="base", language="fr")
    monkeypatch.setattr(tr, "_get_model", lambda: fake_model)

    stereo = array("h", [500, -7] * 400).tobytes()
    tr.transcribe(stereo, sample_rate=16000, channels=2)

    audio = fake_model.transcribe.call_args.args[0]
    assert len(audio) == 400
    assert fake_model.transcribe.call_args.kwargs["language"] == "fr"


def test_transcribe_other_rates_go_through_temp_wav(monkeypatch) -> None:
    seen: dict[str, object] = {}
    fake_model = _fake_model("hola")

    def _transcribe(audio, **kwargs):
        seen["path"] = audio
        seen["existed"] = os.path.exists(audio)
        return fake_model.transcribe.return_value

    fake_model.transcribe.side_effect = _transcribe
    tr = FasterWhisperPCM16Transcriber(model_size="base")
    monkeypatch.setattr(tr, "_get_model", lambda: fake_model)

    out = tr.transcribe(array("h", [0] * 4800).tobytes(), sample_rate=48000, channels=1, language="es")

    assert out == "hola"
    assert str(seen["path"]).endswith(".wav")
    assert seen["existed"] is True
    assert not os.path.exists(str(seen["path"]))


def test_empty_audio_skips_model(monkeypatch) -> None:
    tr = FasterWhisperPCM16Transcriber()
    monkeypatch.setattr(tr, "_get_model", lambda: (_ for _ in ()).throw(AssertionError("loaded")))
    assert tr.transcribe(b"", sample_rate=16000, channels=1) == ""
