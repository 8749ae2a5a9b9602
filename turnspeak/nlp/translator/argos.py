from __future__ import annotations
from .base import Translator
from turnspeak.contracts import TranslationRequest, TranslationResult
from turnspeak.errors import TranslationError

class ArgosTranslator(Translator):
    """Offline translation. Language packages are installed per pair on first use."""

    def __init__(self, auto_install: bool = True):
        self.auto_install = auto_install
        self._ready_pairs: set[tuple[str, str]] = set()

    @property
    def name(self) -> str:
        return "argos"

    def _ensure_pair(self, from_code: str, to_code: str) -> None:
        if (from_code, to_code) in self._ready_pairs:
            return

        import argostranslate.package
        import argostranslate.translate

        installed = argostranslate.translate.get_installed_languages()
        src = next((l for l in installed if l.code == from_code), None)
        dst = next((l for l in installed if l.code == to_code), None)
        have_pair = src is not None and dst is not None and src.get_translation(dst) is not None

        if not have_pair:
            if not self.auto_install:
                raise RuntimeError(
                    f"Argos model {from_code}->{to_code} not installed and auto_install=False"
                )

            argostranslate.package.update_package_index()
            available = argostranslate.package.get_available_packages()
            pkg = next(
                (p for p in available if p.from_code == from_code and p.to_code == to_code),
                None,
            )
            if pkg is None:
                raise TranslationError(f"No Argos package found for {from_code}->{to_code}")

            argostranslate.package.install_from_path(pkg.download())

        self._ready_pairs.add((from_code, to_code))

    def translate(self, req: TranslationRequest) -> TranslationResult:
        self._ensure_pair(req.source_lang, req.target_lang)
        import argostranslate.translate
        out = argostranslate.translate.translate(req.text, req.source_lang, req.target_lang)
        if not out:
            raise TranslationError("Argos returned an empty translation")
        return TranslationResult(source_text=req.text, translated_text=out, provider=self.name)
