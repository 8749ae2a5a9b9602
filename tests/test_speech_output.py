from __future__ import annotations

import asyncio
import threading
from types import SimpleNamespace

import pytest

from turnspeak.contracts import SpeechRequest
from turnspeak.errors import SynthesisError
from turnspeak.speech.output import SpeechOutputChannel
from turnspeak.speech.synth import Pyttsx3Synthesizer, Synthesizer, pick_voice


class _BlockingSynth(Synthesizer):
    """Each speak() plays until the test releases it or stop() interrupts it."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.started: list[str] = []
        self.finished: list[str] = []
        self.active = 0
        self.max_active = 0
        self.stops = 0
        self._done: asyncio.Event | None = None

    @property
    def name(self) -> str:
        return "blocking"

    async def speak(self, req: SpeechRequest) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.append(req.text)
        try:
            if req.text == self.fail_on:
                raise SynthesisError("voice not available")
            self._done = asyncio.Event()
            await self._done.wait()
            self.finished.append(req.text)
        finally:
            self.active -= 1

    def release(self) -> None:
        if self._done is not None:
            self._done.set()

    def stop(self) -> None:
        self.stops += 1
        self.release()


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def test_requests_play_one_at_a_time_in_order() -> None:
    async def scenario() -> None:
        synth = _BlockingSynth()
        out = SpeechOutputChannel(synth, rate=0.9, pitch=1.0)
        out.speak("uno", "Spanish")
        out.speak("dos", "Spanish")
        out.speak("tres", "Spanish")
        await _settle()
        assert synth.started == ["uno"]
        assert out.speaking
        assert out.pending == 2

        for _ in range(3):
            synth.release()
            await _settle()
        await out.join()

        assert synth.finished == ["uno", "dos", "tres"]
        assert synth.max_active == 1
        await out.aclose()

    asyncio.run(scenario())


def test_request_carries_locale_rate_and_pitch() -> None:
    async def scenario() -> None:
        seen: list[SpeechRequest] = []

        class _Recorder(_BlockingSynth):
            async def speak(self, req: SpeechRequest) -> None:
                seen.append(req)

        out = SpeechOutputChannel(_Recorder(), rate=1.2, pitch=0.8)
        out.speak("नमस्ते", "Hindi")
        out.speak("hola", "Unknown")
        await _settle()
        await out.join()
        assert seen == [
            SpeechRequest(text="नमस्ते", locale="hi-IN", rate=1.2, pitch=0.8),
            SpeechRequest(text="hola", locale="en-US", rate=1.2, pitch=0.8),
        ]
        await out.aclose()

    asyncio.run(scenario())


def test_blank_text_is_not_spoken() -> None:
    async def scenario() -> None:
        synth = _BlockingSynth()
        out = SpeechOutputChannel(synth)
        out.speak("   ", "English")
        await _settle()
        assert synth.started == []
        assert out.pending == 0
        await out.aclose()

    asyncio.run(scenario())


def test_cancel_all_drops_queue_and_interrupts_current() -> None:
    async def scenario() -> None:
        synth = _BlockingSynth()
        out = SpeechOutputChannel(synth)
        out.speak("a", "English")
        out.speak("b", "English")
        out.speak("c", "English")
        await _settle()

        out.cancel_all()
        await _settle()
        await out.join()

        assert synth.stops == 1
        assert synth.started == ["a"]
        assert out.pending == 0
        assert not out.speaking

        out.speak("d", "English")
        await _settle()
        assert synth.started == ["a", "d"]
        synth.release()
        await out.join()
        await out.aclose()

    asyncio.run(scenario())


def test_cancel_all_when_idle_is_a_noop() -> None:
    async def scenario() -> None:
        synth = _BlockingSynth()
        out = SpeechOutputChannel(synth)
        out.cancel_all()
        assert synth.stops == 0
        await out.aclose()

    asyncio.run(scenario())


def test_synthesis_failure_is_reported_and_queue_continues() -> None:
    async def scenario() -> None:
        failures = []
        synth = _BlockingSynth(fail_on="bad")
        out = SpeechOutputChannel(synth, on_failure=lambda req, exc: failures.append((req.text, str(exc))))
        out.speak("bad", "English")
        out.speak("good", "English")
        await _settle()
        synth.release()
        await out.join()

        assert failures == [("bad", "voice not available")]
        assert synth.finished == ["good"]
        await out.aclose()

    asyncio.run(scenario())


def test_closed_channel_ignores_speak() -> None:
    async def scenario() -> None:
        synth = _BlockingSynth()
        out = SpeechOutputChannel(synth)
        await out.aclose()
        out.speak("late", "English")
        await _settle()
        assert synth.started == []

    asyncio.run(scenario())


def test_rate_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SpeechOutputChannel(_BlockingSynth(), rate=0)


def _voice(vid: str, *languages) -> SimpleNamespace:
    return SimpleNamespace(id=vid, languages=list(languages))


def test_pick_voice_prefers_exact_tag_then_language_root() -> None:
    voices = [
        _voice("english", b"\x05en-gb"),
        _voice("spanish-latin", "es-419"),
        _voice("spanish", "es-ES"),
        _voice("hindi", b"\x05hi"),
    ]
    assert pick_voice(voices, "es-ES") == "spanish"
    assert pick_voice(voices, "en-US") == "english"
    assert pick_voice(voices, "hi-IN") == "hindi"
    assert pick_voice(voices, "ja-JP") is None


def test_pick_voice_falls_back_to_id_when_languages_missing() -> None:
    voices = [
        _voice("HKEY_LOCAL_MACHINE\\Voices\\TTS_MS_EN-US_ZIRA_11.0"),
        _voice("com.apple.voice.compact.fr-FR.Thomas"),
    ]
    assert pick_voice(voices, "fr-FR") == "com.apple.voice.compact.fr-FR.Thomas"
    assert pick_voice(voices, "en-US") == "HKEY_LOCAL_MACHINE\\Voices\\TTS_MS_EN-US_ZIRA_11.0"


class _FakeEngine:
    """pyttsx3-like engine: runAndWait fires word callbacks until stopped or released."""

    def __init__(self) -> None:
        self.said: list[str] = []
        self.interrupted: list[str] = []
        self.playing = threading.Event()
        self.release = threading.Event()
        self.stop_threads: set[str] = set()
        self._callbacks: dict[str, object] = {}
        self._text: str | None = None
        self._stopped = False

    def connect(self, topic: str, callback) -> None:
        self._callbacks[topic] = callback

    def getProperty(self, name: str):
        return {"rate": 200, "voices": []}[name]

    def setProperty(self, name: str, value) -> None:
        pass

    def say(self, text: str) -> None:
        self._text = text
        self.said.append(text)

    def stop(self) -> None:
        self.stop_threads.add(threading.current_thread().name)
        self._stopped = True

    def runAndWait(self) -> None:
        self._stopped = False
        self._callbacks["started-utterance"]("utt")
        self.playing.set()
        while not self._stopped and not self.release.wait(0.01):
            self._callbacks["started-word"]("utt", 0, 1)
        if self._stopped:
            self.interrupted.append(self._text)
        self.playing.clear()


def _pyttsx3_with(engine: _FakeEngine, monkeypatch) -> Pyttsx3Synthesizer:
    synth = Pyttsx3Synthesizer()
    monkeypatch.setattr(synth, "_create_engine", lambda: engine)
    return synth


def test_shared_pyttsx3_cancel_all_silences_both_listeners(monkeypatch) -> None:
    engine = _FakeEngine()

    async def scenario() -> None:
        synth = _pyttsx3_with(engine, monkeypatch)
        to_user1 = SpeechOutputChannel(synth)
        to_user2 = SpeechOutputChannel(synth)
        try:
            to_user2.speak("Hola", "Spanish")
            assert await asyncio.to_thread(engine.playing.wait, 2.0)
            to_user1.speak("Hello", "English")
            await _settle()
            assert to_user1.speaking and to_user2.speaking

            to_user2.cancel_all()
            to_user1.cancel_all()
            await asyncio.wait_for(asyncio.gather(to_user1.join(), to_user2.join()), 2.0)

            assert engine.said == ["Hola"]
            assert engine.interrupted == ["Hola"]
            assert engine.stop_threads and all(n.startswith("turnspeak-tts") for n in engine.stop_threads)

            engine.release.set()
            to_user1.speak("Again", "English")
            await asyncio.wait_for(to_user1.join(), 2.0)
            assert engine.said == ["Hola", "Again"]
        finally:
            await to_user1.aclose()
            await to_user2.aclose()
            synth.close()

    asyncio.run(scenario())


def test_pyttsx3_stop_with_nothing_playing_does_not_block_later_speech(monkeypatch) -> None:
    engine = _FakeEngine()
    engine.release.set()

    async def scenario() -> None:
        synth = _pyttsx3_with(engine, monkeypatch)
        try:
            synth.stop()
            await synth.speak(SpeechRequest(text="नमस्ते", locale="hi-IN", rate=0.9, pitch=1.0))
        finally:
            synth.close()

    asyncio.run(scenario())
    assert engine.said == ["नमस्ते"]
    assert engine.interrupted == []
