from __future__ import annotations


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return "Unknown runtime error."
    for ln in reversed(lines):
        if ln.startswith(("File ", "^", "Traceback ", "The above exception", "During handling")):
            continue
        out = ln
        break
    else:
        out = lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def describe_exception(exc: BaseException) -> str:
    """One-line summary for an exception object, following its cause chain."""
    root = exc
    while root.__cause__ is not None:
        root = root.__cause__
    head = f"{type(exc).__name__}: {exc}"
    if root is not exc:
        head = f"{head} ({type(root).__name__}: {root})"
    return summarize_exception(head)


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "no module named" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "config file not found" in s:
        return "Configured JSON file is missing. Update the config path or restore the file."
    if ("sounddevice" in s or "microphone" in s or "portaudio" in s) and ("failed" in s or "error" in s):
        return "Microphone init failed. Check input device selection and app mic permissions."
    if "capture stream ended" in s:
        return "The microphone stream stopped. Toggle capture to try again."
    if "connectionerror" in s or "timeout" in s or "max retries" in s:
        return "Translation service unreachable. Check the network connection."
    if "pyttsx3" in s or "espeak" in s or "sapi5" in s or "nsss" in s:
        return "Speech output driver failed. Install a TTS engine (espeak on Linux) or use --tts off."
    return "Check logs for full traceback."
