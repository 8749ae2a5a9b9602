from __future__ import annotations

DEFAULT_LOCALE = "en-US"

LANGUAGE_LOCALES: dict[str, str] = {
    "English": "en-US",
    "Spanish": "es-ES",
    "French": "fr-FR",
    "German": "de-DE",
    "Italian": "it-IT",
    "Portuguese": "pt-PT",
    "Russian": "ru-RU",
    "Chinese": "zh-CN",
    "Japanese": "ja-JP",
    "Korean": "ko-KR",
    "Arabic": "ar-SA",
    "Hindi": "hi-IN",
    "Tamil": "ta-IN",
}

_BY_FOLDED_NAME = {name.casefold(): tag for name, tag in LANGUAGE_LOCALES.items()}


def code_for(language_name: str | None) -> str:
    """Map a display language name to a capture/synthesis locale tag.

    Unknown names fall back to DEFAULT_LOCALE instead of failing.
    """
    if not language_name:
        return DEFAULT_LOCALE
    tag = LANGUAGE_LOCALES.get(language_name)
    if tag is not None:
        return tag
    return _BY_FOLDED_NAME.get(language_name.strip().casefold(), DEFAULT_LOCALE)


def locale_root(tag: str) -> str:
    """'es-ES' -> 'es'."""
    return (tag or DEFAULT_LOCALE).replace("_", "-").split("-", 1)[0].strip().lower()


def supported_languages() -> tuple[str, ...]:
    return tuple(LANGUAGE_LOCALES.keys())


def is_supported(language_name: str) -> bool:
    return (language_name or "").strip().casefold() in _BY_FOLDED_NAME
