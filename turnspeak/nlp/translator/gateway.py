from __future__ import annotations

import asyncio
import logging
import time

from turnspeak.app.diagnostics import summarize_exception
from turnspeak.app.logging_setup import log_event
from turnspeak.contracts import TranslationRequest, TranslationResult
from turnspeak.errors import TranslationError
from turnspeak.nlp.languages import code_for, locale_root
from turnspeak.nlp.translator.base import Translator

ERROR_PREFIX = "[Translation Error]"
FAILED_PREFIX = "[Translation Failed]"


def failure_text(text: str, *, prefix: str = FAILED_PREFIX) -> str:
    return f"{prefix} {text}"


class TranslationGateway:
    """
    Async boundary around a synchronous Translator.

    Same-language pairs (by locale root) return the text unchanged without
    touching the backend. Backend failures become sentinel results; nothing
    raised by the backend escapes translate().
    """

    def __init__(self, translator: Translator, *, logger: logging.Logger | None = None) -> None:
        self.translator = translator
        self.logger = logger or logging.getLogger(__name__)

    async def translate(self, text: str, from_language: str, to_language: str) -> TranslationResult:
        src = locale_root(code_for(from_language))
        dst = locale_root(code_for(to_language))
        if src == dst:
            return TranslationResult(source_text=text, translated_text=text, provider="identity")

        req = TranslationRequest(text=text, source_lang=src, target_lang=dst)
        t0 = time.perf_counter()
        try:
            result = await asyncio.to_thread(self.translator.translate, req)
        except TranslationError as e:
            log_event(
                self.logger,
                logging.WARNING,
                "translate_rejected",
                provider=self.translator.name,
                langpair=f"{src}|{dst}",
                detail=str(e),
            )
            return TranslationResult(
                source_text=text,
                translated_text=failure_text(text, prefix=ERROR_PREFIX),
                provider=self.translator.name,
                ok=False,
                error=str(e),
            )
        except Exception as e:
            self.logger.exception(
                "translate_failed",
                extra={"provider": self.translator.name, "langpair": f"{src}|{dst}"},
            )
            return TranslationResult(
                source_text=text,
                translated_text=failure_text(text),
                provider=self.translator.name,
                ok=False,
                error=summarize_exception(f"{type(e).__name__}: {e}"),
            )

        log_event(
            self.logger,
            logging.INFO,
            "translate_done",
            provider=result.provider,
            langpair=f"{src}|{dst}",
            chars=len(text),
            ms=round((time.perf_counter() - t0) * 1000.0, 2),
        )
        return result
