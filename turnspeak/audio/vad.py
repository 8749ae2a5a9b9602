from __future__ import annotations

import math
from array import array
from typing import Protocol


class SpeechDetector(Protocol):
    def is_speech(self, pcm16: bytes, channels: int = 1) -> bool:
        ...


def pcm16_rms(pcm16: bytes) -> float:
    """Return RMS energy for little-endian int16 PCM bytes."""
    samples = array("h")
    samples.frombytes(pcm16[: len(pcm16) - (len(pcm16) % 2)])
    if not samples:
        return 0.0
    return math.sqrt(math.fsum(float(v) * float(v) for v in samples) / len(samples))


class EnergyVAD:
    """Chunk-level speech gate: RMS over all interleaved samples."""

    def __init__(self, rms_threshold: float = 250.0) -> None:
        if rms_threshold < 0:
            raise ValueError("rms_threshold must be >= 0")
        self.rms_threshold = float(rms_threshold)

    def is_speech(self, pcm16: bytes, channels: int = 1) -> bool:
        del channels
        return pcm16_rms(pcm16) >= self.rms_threshold
