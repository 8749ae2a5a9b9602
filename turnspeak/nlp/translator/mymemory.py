from __future__ import annotations

from typing import Any, Optional

import requests

from .base import Translator
from turnspeak.contracts import TranslationRequest, TranslationResult
from turnspeak.errors import TranslationError

DEFAULT_ENDPOINT = "https://api.mymemory.translated.net/get"


def _status_ok(status: Any) -> bool:
    try:
        return int(status) == 200
    except (TypeError, ValueError):
        return False


class MyMemoryTranslator(Translator):
    """
    MyMemory REST endpoint: one GET per utterance.

    Query: q=<text>&langpair=<src>|<dst>[&de=<email>]
    Body:  {"responseStatus": 200, "responseData": {"translatedText": "..."}}
    """

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 8.0,
        email: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.endpoint = endpoint
        self.timeout = float(timeout)
        self.email = email
        self.session = session or requests.Session()

    @property
    def name(self) -> str:
        return "mymemory"

    def _params(self, req: TranslationRequest) -> dict[str, str]:
        params = {"q": req.text, "langpair": f"{req.source_lang}|{req.target_lang}"}
        if self.email:
            params["de"] = self.email
        return params

    def translate(self, req: TranslationRequest) -> TranslationResult:
        # Network errors (requests.RequestException) propagate to the gateway.
        response = self.session.get(self.endpoint, params=self._params(req), timeout=self.timeout)
        if response.status_code != 200:
            raise TranslationError(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise TranslationError("malformed JSON body") from e
        if not isinstance(data, dict):
            raise TranslationError("malformed JSON body")

        status = data.get("responseStatus")
        if not _status_ok(status):
            detail = data.get("responseDetails") or ""
            raise TranslationError(f"responseStatus={status} {detail}".strip())

        payload = data.get("responseData")
        translated = payload.get("translatedText") if isinstance(payload, dict) else None
        if not isinstance(translated, str) or not translated.strip():
            raise TranslationError("missing responseData.translatedText")

        return TranslationResult(source_text=req.text, translated_text=translated, provider=self.name)
