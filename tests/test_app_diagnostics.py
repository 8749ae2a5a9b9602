from __future__ import annotations

from turnspeak.app.diagnostics import describe_exception, hint_for_exception, summarize_exception
from turnspeak.errors import CaptureError


def test_summarize_exception_picks_last_meaningful_line() -> None:
    detail = (
        "Traceback (most recent call last):\n"
        '  File "x.py", line 1, in <module>\n'
        "    boom()\n"
        "RuntimeError: failed to open stream"
    )
    assert summarize_exception(detail) == "RuntimeError: failed to open stream"


def test_summarize_exception_truncates_long_line() -> None:
    detail = "ValueError: " + ("x" * 500)
    out = summarize_exception(detail, max_len=60)
    assert out.startswith("ValueError: ")
    assert out.endswith("...")
    assert len(out) <= 60


def test_summarize_exception_empty() -> None:
    assert summarize_exception("") == "Unknown runtime error."


def test_describe_exception_follows_cause() -> None:
    try:
        try:
            raise OSError("PortAudio error -9996")
        except OSError as e:
            raise CaptureError("Recognizer failed") from e
    except CaptureError as exc:
        text = describe_exception(exc)
    assert text == "CaptureError: Recognizer failed (OSError: PortAudio error -9996)"


def test_hint_for_microphone_failure() -> None:
    hint = hint_for_exception("MicError: sounddevice failed to open input stream")
    assert "Microphone init failed" in hint


def test_hint_for_network_failure() -> None:
    hint = hint_for_exception("ConnectionError: Max retries exceeded with url")
    assert "Translation service unreachable" in hint


def test_hint_for_missing_tts_engine() -> None:
    assert "--tts off" in hint_for_exception("SynthesisError: pyttsx3 failed: espeak not found")


def test_hint_for_exception_default() -> None:
    hint = hint_for_exception("RuntimeError: unknown")
    assert hint == "Check logs for full traceback."
