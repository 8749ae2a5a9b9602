from __future__ import annotations
import os
from typing import Optional
from .base import Translator
from .argos import ArgosTranslator
from .mymemory import DEFAULT_ENDPOINT, MyMemoryTranslator
from .stub import StubTranslator

def get_translator(
    provider: str | None = None,
    *,
    endpoint: Optional[str] = None,
    timeout: float = 8.0,
    email: Optional[str] = None,
) -> Translator:
    provider = (provider or os.getenv("TURNSPEAK_TRANSLATOR", "mymemory")).lower().strip()

    if provider == "mymemory":
        return MyMemoryTranslator(endpoint=endpoint or DEFAULT_ENDPOINT, timeout=timeout, email=email)
    if provider == "argos":
        return ArgosTranslator()
    if provider == "stub":
        return StubTranslator()

    raise ValueError(f"Unknown translator provider: {provider}")
