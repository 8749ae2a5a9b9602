from __future__ import annotations

import asyncio
import threading
import time
from array import array

import pytest

from turnspeak.audio.vad import EnergyVAD
from turnspeak.capture.whisper import UtteranceSettings, WhisperRecognizer
from turnspeak.contracts import AudioChunk, RecognitionConfig, Speaker, TranscriptKind, TranslationResult
from turnspeak.errors import CaptureError
from turnspeak.session.coordinator import SessionCoordinator
from turnspeak.speech.synth import SilentSynthesizer


def _chunk(amplitude: int, index: int) -> AudioChunk:
    frames = 8000
    return AudioChunk(
        pcm16=array("h", [amplitude] * frames).tobytes(),
        sample_rate=16000,
        channels=1,
        start_time=index * 0.5,
        duration=0.5,
    )


def _speech_then_silence() -> list[AudioChunk]:
    levels = [3000, 3000, 3000, 0, 0]
    return [_chunk(level, i) for i, level in enumerate(levels)]


class _FakeTranscriber:
    def __init__(self) -> None:
        self.languages: list[str | None] = []

    def transcribe(self, pcm16: bytes, *, sample_rate: int, channels: int, language=None) -> str:
        self.languages.append(language)
        return f"text {len(self.languages)}"


def _recognizer(chunk_source, transcriber=None, interim_chunks: int = 2, mic_gate=None) -> WhisperRecognizer:
    return WhisperRecognizer(
        mic_gate=mic_gate,
        chunk_source=chunk_source,
        transcriber=transcriber or _FakeTranscriber(),
        vad_factory=lambda: EnergyVAD(rms_threshold=500.0),
        settings=UtteranceSettings(silence_chunks=2, min_utter_sec=0.4, max_utter_sec=None, interim_chunks=interim_chunks),
    )


async def _collect(recognizer: WhisperRecognizer, config: RecognitionConfig):
    return [event async for event in recognizer.listen(config)]


def test_listen_streams_interim_then_final_in_speaker_language() -> None:
    transcriber = _FakeTranscriber()
    recognizer = _recognizer(lambda stop: iter(_speech_then_silence()), transcriber)

    events = asyncio.run(_collect(recognizer, RecognitionConfig(locale="hi-IN")))

    assert [(e.kind, e.text) for e in events] == [
        (TranscriptKind.INTERIM, "text 1"),
        (TranscriptKind.FINAL, "text 2"),
    ]
    assert transcriber.languages == ["hi", "hi"]


def test_interim_results_can_be_disabled() -> None:
    recognizer = _recognizer(lambda stop: iter(_speech_then_silence()))
    events = asyncio.run(_collect(recognizer, RecognitionConfig(locale="en-US", interim_results=False)))
    assert [e.kind for e in events] == [TranscriptKind.FINAL]


def test_source_failure_surfaces_as_capture_error() -> None:
    def _broken(stop):
        raise OSError("PortAudio error: device unavailable")

    recognizer = _recognizer(_broken)
    with pytest.raises(CaptureError, match="device unavailable"):
        asyncio.run(_collect(recognizer, RecognitionConfig(locale="en-US")))


def test_closing_the_stream_stops_the_capture_thread() -> None:
    stopped = threading.Event()

    def _endless(stop: threading.Event):
        i = 0
        try:
            while not stop.is_set():
                yield _chunk(3000 if i % 4 < 2 else 0, i)
                i += 1
                stop.wait(0.01)
        finally:
            stopped.set()

    async def scenario():
        recognizer = _recognizer(_endless, interim_chunks=0)
        stream = recognizer.listen(RecognitionConfig(locale="en-US"))
        first = await stream.__anext__()
        await stream.aclose()
        return first

    first = asyncio.run(scenario())
    assert first.kind is TranscriptKind.FINAL
    assert stopped.wait(2.0)


class _SharedMic:
    """Chunk source standing in for one input device; each read blocks like stream.read."""

    def __init__(self, read_seconds: float) -> None:
        self.read_seconds = read_seconds
        self.open_now = 0
        self.max_open = 0
        self.opens = 0
        self._lock = threading.Lock()

    def chunks(self, stop: threading.Event):
        with self._lock:
            self.open_now += 1
            self.opens += 1
            self.max_open = max(self.max_open, self.open_now)
        try:
            i = 0
            while not stop.is_set():
                time.sleep(self.read_seconds)
                yield _chunk(0, i)
                i += 1
        finally:
            with self._lock:
                self.open_now -= 1


class _EchoGateway:
    async def translate(self, text: str, from_language: str, to_language: str) -> TranslationResult:
        return TranslationResult(source_text=text, translated_text=text, provider="echo")


def test_preemption_hands_the_mic_over_without_overlap() -> None:
    mic = _SharedMic(read_seconds=0.3)

    async def scenario() -> None:
        gate = asyncio.Lock()
        coordinator = SessionCoordinator(
            languages={Speaker.SPEAKER1: "English", Speaker.SPEAKER2: "Spanish"},
            recognizers={
                Speaker.SPEAKER1: _recognizer(mic.chunks, interim_chunks=0, mic_gate=gate),
                Speaker.SPEAKER2: _recognizer(mic.chunks, interim_chunks=0, mic_gate=gate),
            },
            gateway=_EchoGateway(),
            synthesizer=SilentSynthesizer(),
        )
        try:
            coordinator.toggle_capture(Speaker.SPEAKER1)
            await asyncio.sleep(0.45)
            coordinator.toggle_capture(Speaker.SPEAKER2)
            await asyncio.sleep(0.8)
            assert coordinator.active_speaker is Speaker.SPEAKER2
            assert mic.opens == 2
        finally:
            await coordinator.aclose()

    asyncio.run(scenario())
    assert mic.max_open == 1
    assert mic.open_now == 0
