from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from turnspeak.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from turnspeak.audio.mic import SoundDeviceMicSource
from turnspeak.audio.vad import EnergyVAD, SpeechDetector
from turnspeak.audio.vad_webrtc import WebRtcVad
from turnspeak.capture.whisper import UtteranceSettings, WhisperRecognizer
from turnspeak.contracts import Speaker
from turnspeak.nlp.translator.factory import get_translator
from turnspeak.nlp.translator.gateway import TranslationGateway
from turnspeak.session.arbiter import TurnPolicy
from turnspeak.speech.synth import Pyttsx3Synthesizer, SilentSynthesizer, Synthesizer


@dataclass(frozen=True)
class SessionServices:
    languages: dict[Speaker, str]
    recognizers: dict[Speaker, WhisperRecognizer]
    gateway: TranslationGateway
    synthesizer: Synthesizer
    policy: TurnPolicy


def _vad_factory(args: Any) -> Callable[[], SpeechDetector]:
    if str(args.vad) == "webrtc":
        sr = int(args.sr)
        aggressiveness = int(args.vad_aggressiveness)
        return lambda: WebRtcVad(sr=sr, aggressiveness=aggressiveness)
    threshold = float(args.rms_th)
    return lambda: EnergyVAD(rms_threshold=threshold)


def build_session_services(args: Any, *, logger: logging.Logger | None = None) -> SessionServices:
    # One whisper model serves both speakers; the language is passed per utterance.
    transcriber = FasterWhisperPCM16Transcriber(model_size=str(args.model))
    settings = UtteranceSettings(
        silence_chunks=max(1, int(args.silence_chunks)),
        min_utter_sec=max(0.0, float(args.min_utter_sec)),
        max_utter_sec=float(args.max_utter_sec) if float(args.max_utter_sec) > 0 else None,
        interim_chunks=max(0, int(args.interim_chunks)),
    )
    vad_factory = _vad_factory(args)
    # Both speakers read the same input device; only one stream may hold it.
    mic_gate = asyncio.Lock()

    recognizers: dict[Speaker, WhisperRecognizer] = {}
    for speaker in Speaker:
        mic = SoundDeviceMicSource(
            chunk_seconds=float(args.chunk_sec),
            sample_rate=int(args.sr),
            channels=int(args.channels),
            device=args.device,
        )
        recognizers[speaker] = WhisperRecognizer(
            chunk_source=mic.chunks,
            transcriber=transcriber,
            vad_factory=vad_factory,
            settings=settings,
            mic_gate=mic_gate,
            logger=logger,
        )

    translator = get_translator(
        str(args.translator),
        endpoint=args.translate_endpoint,
        timeout=float(args.translate_timeout),
        email=args.translate_email,
    )
    synthesizer: Synthesizer
    if str(args.tts) == "off":
        synthesizer = SilentSynthesizer()
    else:
        synthesizer = Pyttsx3Synthesizer(logger=logger)

    return SessionServices(
        languages={
            Speaker.SPEAKER1: str(args.speaker1_language),
            Speaker.SPEAKER2: str(args.speaker2_language),
        },
        recognizers=recognizers,
        gateway=TranslationGateway(translator, logger=logger),
        synthesizer=synthesizer,
        policy=TurnPolicy(str(args.turn_policy)),
    )
