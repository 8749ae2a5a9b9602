from __future__ import annotations

import os
import tempfile
import wave
from typing import Optional

from turnspeak.audio.vad_webrtc import first_channel_pcm16

WHISPER_SAMPLE_RATE = 16000


def _write_pcm16_wav(path: str, pcm16: bytes, sample_rate: int, channels: int) -> None:
    with wave.open(path, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm16)


class FasterWhisperPCM16Transcriber:
    """
    Transcribe one buffered utterance of PCM16 audio to text.

    16 kHz audio goes to the model as a float32 array; other rates are written
    to a temporary WAV file so faster-whisper can resample on decode.
    """

    def __init__(
        self,
        *,
        model_size: str = "small",
        device: str = "cpu",
        compute_type: str = "int8",
        language: Optional[str] = "en",
        beam_size: int = 1,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self._model = None

    def _get_model(self):
        if self._model is None:
            from faster_whisper import WhisperModel

            self._model = WhisperModel(
                self.model_size,
                device=self.device,
                compute_type=self.compute_type,
            )
        return self._model

    def _run(self, audio, language: Optional[str]) -> str:
        segments, _info = self._get_model().transcribe(
            audio,
            language=language,
            beam_size=self.beam_size,
            vad_filter=False,
            condition_on_previous_text=False,
        )
        return " ".join(t for t in ((s.text or "").strip() for s in segments) if t)

    def transcribe(
        self,
        pcm16: bytes,
        *,
        sample_rate: int,
        channels: int,
        language: Optional[str] = None,
    ) -> str:
        if not pcm16:
            return ""
        language = language or self.language

        if sample_rate == WHISPER_SAMPLE_RATE:
            import numpy as np

            mono = first_channel_pcm16(pcm16, channels)
            audio = np.frombuffer(mono, dtype=np.int16).astype(np.float32) / 32768.0
            return self._run(audio, language)

        fd, tmp_path = tempfile.mkstemp(suffix=".wav", prefix="turnspeak_utter_")
        os.close(fd)
        try:
            _write_pcm16_wav(tmp_path, pcm16, sample_rate=sample_rate, channels=channels)
            return self._run(tmp_path, language)
        finally:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
