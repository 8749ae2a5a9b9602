from __future__ import annotations

import argparse
import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from turnspeak.nlp.languages import supported_languages


DEFAULTS: dict[str, Any] = {
    "speaker1_language": "English",
    "speaker2_language": "Hindi",
    "turn_policy": "preempt",
    "translator": "mymemory",
    "translate_endpoint": "https://api.mymemory.translated.net/get",
    "translate_timeout": 8.0,
    "translate_email": None,
    "list_devices": False,
    "device": None,
    "sr": 16000,
    "channels": 1,
    "chunk_sec": 0.3,
    "vad": "energy",
    "rms_th": 250.0,
    "vad_aggressiveness": 2,
    "silence_chunks": 3,
    "min_utter_sec": 0.4,
    "max_utter_sec": 8.0,
    "interim_chunks": 4,
    "model": "small",
    "tts": "pyttsx3",
    "speech_rate": 0.9,
    "speech_pitch": 1.0,
    "start_muted": False,
    "print_console": True,
    "debug": False,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())

TURN_POLICIES = ("preempt", "reject")
TRANSLATORS = ("mymemory", "argos", "stub")
VAD_KINDS = ("energy", "webrtc")
TTS_KINDS = ("pyttsx3", "off")


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("TurnSpeak", "TurnSpeak"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: payload[key] for key in CONFIG_KEYS if key in payload}


def load_default_config() -> dict[str, Any]:
    return copy.deepcopy(DEFAULTS)


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = load_default_config()
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    merged = dict(defaults)
    merged.update(_known_only(_load_json_dict(chosen)))
    return merged, chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    payload = _known_only(values)
    defaults = load_default_config()
    if config_path:
        path = Path(config_path)
        existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    else:
        path = ensure_user_config_exists(defaults)
        existing = _known_only(_load_json_dict(path))
    merged = dict(defaults)
    merged.update(existing)
    merged.update(payload)
    _write_json_dict(path, _known_only(merged))
    return path


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    languages = list(supported_languages())
    p = argparse.ArgumentParser(
        prog="turnspeak",
        description="Turn-based two-speaker live speech translation.",
    )
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    p.add_argument("--list-languages", action="store_true", help="print supported languages and exit")
    p.add_argument(
        "--speaker1-language",
        default=defaults["speaker1_language"],
        choices=languages,
        help="language spoken by speaker 1",
    )
    p.add_argument(
        "--speaker2-language",
        default=defaults["speaker2_language"],
        choices=languages,
        help="language spoken by speaker 2",
    )
    p.add_argument(
        "--turn-policy",
        default=defaults["turn_policy"],
        choices=list(TURN_POLICIES),
        help="preempt: a new speaker stops the current one; reject: ignore while busy",
    )
    p.add_argument("--translator", default=defaults["translator"], choices=list(TRANSLATORS))
    p.add_argument("--translate-endpoint", default=defaults["translate_endpoint"], help="MyMemory GET endpoint")
    p.add_argument(
        "--translate-timeout",
        type=float,
        default=defaults["translate_timeout"],
        help="translation request timeout (seconds)",
    )
    p.add_argument(
        "--translate-email",
        default=defaults["translate_email"],
        help="optional contact email sent to MyMemory for a larger quota",
    )
    p.add_argument("--device", type=int, default=defaults["device"], help="sounddevice input device id")
    p.add_argument("--sr", type=int, default=defaults["sr"], help="sample rate (Hz)")
    p.add_argument("--channels", type=int, default=defaults["channels"], help="input channels")
    p.add_argument("--chunk-sec", type=float, default=defaults["chunk_sec"], help="mic chunk size in seconds")
    p.add_argument("--vad", default=defaults["vad"], choices=list(VAD_KINDS), help="speech detector")
    p.add_argument("--rms-th", type=float, default=defaults["rms_th"], help="RMS threshold for energy VAD")
    p.add_argument(
        "--vad-aggressiveness",
        type=int,
        default=defaults["vad_aggressiveness"],
        choices=[0, 1, 2, 3],
        help="WebRTC VAD aggressiveness",
    )
    p.add_argument(
        "--silence-chunks",
        type=int,
        default=defaults["silence_chunks"],
        help="finalize after this many non-speech chunks",
    )
    p.add_argument(
        "--min-utter-sec",
        type=float,
        default=defaults["min_utter_sec"],
        help="ignore utterances shorter than this",
    )
    p.add_argument(
        "--max-utter-sec",
        type=float,
        default=defaults["max_utter_sec"],
        help="force finalize while continuously speaking (seconds)",
    )
    p.add_argument(
        "--interim-chunks",
        type=int,
        default=defaults["interim_chunks"],
        help="emit an interim transcript every N speech chunks (0 disables)",
    )
    p.add_argument("--model", default=defaults["model"], help="faster-whisper model size")
    p.add_argument("--tts", default=defaults["tts"], choices=list(TTS_KINDS), help="speech output backend")
    p.add_argument("--speech-rate", type=float, default=defaults["speech_rate"], help="speech rate multiplier")
    p.add_argument("--speech-pitch", type=float, default=defaults["speech_pitch"], help="speech pitch")
    p.add_argument(
        "--start-muted",
        action=argparse.BooleanOptionalAction,
        default=defaults["start_muted"],
        help="start the session with speech output muted",
    )
    p.add_argument(
        "--print-console",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_console"],
        help="print session events to the console",
    )
    p.add_argument("--debug", action="store_true", help="also log to the console")
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    if defaults.get("list_devices"):
        args.list_devices = True
    if defaults.get("debug"):
        args.debug = True
    return args
