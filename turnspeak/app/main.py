from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
import traceback
from typing import AsyncIterator, Callable, Optional

from turnspeak.app.config import resolve_args
from turnspeak.app.diagnostics import hint_for_exception, summarize_exception
from turnspeak.app.logging_setup import APP_LOGGER_NAME, setup_app_logger
from turnspeak.app.services import SessionServices, build_session_services
from turnspeak.audio.mic import SoundDeviceMicSource
from turnspeak.contracts import Message, Speaker
from turnspeak.errors import SessionEndedError
from turnspeak.nlp.languages import LANGUAGE_LOCALES
from turnspeak.session.coordinator import SessionCoordinator
from turnspeak.session.events import EventKind, SessionEvent
from turnspeak.session.transcript import format_line, transcript_for

Printer = Callable[[str], None]

HELP_TEXT = """Commands (type then Enter):
  1  start/stop listening for User 1
  2  start/stop listening for User 2
  m  mute/unmute translated speech
  t  show both transcripts
  s  show session status
  q  end the session and quit"""


def _message_lines(message: Message) -> list[str]:
    out = []
    for viewer in Speaker:
        for line in transcript_for([message], viewer):
            out.append(f"{viewer.label:>6} | {format_line(line)}")
    return out


def format_event(event: SessionEvent) -> list[str]:
    kind = event.kind
    who = event.speaker.label if event.speaker is not None else ""
    if kind is EventKind.TURN_CHANGED:
        if event.speaker is None:
            return ["[turn] nobody is listening"]
        return [f"[turn] listening to {who}"]
    if kind is EventKind.TURN_REJECTED:
        holder = event.data.get("holder")
        held_by = holder.label if isinstance(holder, Speaker) else "the other speaker"
        return [f"[turn] {who} must wait, {held_by} is speaking"]
    if kind is EventKind.INTERIM:
        text = str(event.data.get("text") or "")
        return [f"  ... {who}: {text}"] if text else []
    if kind is EventKind.MESSAGE:
        return _message_lines(event.data["message"])
    if kind is EventKind.MUTE_CHANGED:
        return ["[output] muted" if event.data.get("muted") else "[output] unmuted"]
    if kind is EventKind.CAPTURE_FAILED:
        return [
            f"[error] {who} capture stopped: {event.data.get('detail')}",
            f"        hint: {event.data.get('hint')}",
        ]
    if kind is EventKind.SYNTHESIS_FAILED:
        return [f"[error] speech output for {who} failed: {event.data.get('detail')}"]
    if kind is EventKind.SESSION_ENDED:
        return [f"[session] ended after {event.data.get('messages', 0)} message(s)"]
    return []


def status_lines(coordinator: SessionCoordinator) -> list[str]:
    snap = coordinator.snapshot()
    active = snap.active_speaker.label if snap.active_speaker is not None else "nobody"
    lines = [
        f"session: {snap.phase.value} | listening: {active} | output: {'muted' if snap.muted else 'on'}",
    ]
    for speaker in Speaker:
        line = f"  {speaker.label}: {snap.languages[speaker]}"
        if snap.last_error[speaker]:
            line += f" | last error: {snap.last_error[speaker]}"
        lines.append(line)
    lines.append(f"  messages: {len(coordinator.messages())}")
    return lines


def transcript_lines(coordinator: SessionCoordinator) -> list[str]:
    out: list[str] = []
    for viewer in Speaker:
        out.append(f"== {viewer.label} ({coordinator.language_of(viewer)}) ==")
        lines = coordinator.transcript_for(viewer)
        if not lines:
            out.append("  (no messages yet)")
        out.extend(f"  {format_line(line)}" for line in lines)
    return out


def handle_command(coordinator: SessionCoordinator, raw: str, *, out: Printer = print) -> bool:
    """Apply one console command. Returns False when the session should end."""
    cmd = (raw or "").strip().lower()
    if not cmd:
        return True
    if cmd in ("q", "quit", "exit"):
        coordinator.end_session()
        return False
    try:
        if cmd == "1":
            coordinator.toggle_capture(Speaker.SPEAKER1)
        elif cmd == "2":
            coordinator.toggle_capture(Speaker.SPEAKER2)
        elif cmd == "m":
            coordinator.toggle_mute()
        elif cmd == "t":
            for line in transcript_lines(coordinator):
                out(line)
        elif cmd == "s":
            for line in status_lines(coordinator):
                out(line)
        else:
            out(HELP_TEXT)
    except SessionEndedError:
        return False
    return True


async def _stdin_commands() -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue[Optional[str]] = asyncio.Queue()

    def _push(item: Optional[str]) -> bool:
        try:
            loop.call_soon_threadsafe(lines.put_nowait, item)
        except RuntimeError:
            return False
        return True

    def _reader() -> None:
        for line in sys.stdin:
            if not _push(line):
                return
        _push(None)

    threading.Thread(target=_reader, name="turnspeak-stdin", daemon=True).start()
    while True:
        line = await lines.get()
        if line is None:
            return
        yield line


async def run_session(
    args: argparse.Namespace,
    services: SessionServices,
    *,
    logger: logging.Logger | None = None,
    commands: AsyncIterator[str] | None = None,
    out: Printer = print,
) -> int:
    logger = logger or logging.getLogger(APP_LOGGER_NAME)
    coordinator = SessionCoordinator(
        languages=services.languages,
        recognizers=services.recognizers,
        gateway=services.gateway,
        synthesizer=services.synthesizer,
        policy=services.policy,
        speech_rate=float(args.speech_rate),
        speech_pitch=float(args.speech_pitch),
        muted=bool(args.start_muted),
        logger=logger,
    )
    if bool(args.print_console):

        def _print_event(event: SessionEvent) -> None:
            for line in format_event(event):
                out(line)

        coordinator.subscribe(_print_event)

    out(
        f"TurnSpeak ready: {services.languages[Speaker.SPEAKER1]} <-> "
        f"{services.languages[Speaker.SPEAKER2]} (turn policy: {services.policy.value})"
    )
    out(HELP_TEXT)

    source = commands if commands is not None else _stdin_commands()
    try:
        async for raw in source:
            if not handle_command(coordinator, raw, out=out):
                break
    finally:
        await coordinator.aclose()
    logger.info("session_closed")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, log_dir, log_path = setup_app_logger(console=bool(args.debug))
    logger.info("app_start", extra={"config_path": str(getattr(args, "config", "")), "argv": argv or []})

    if args.list_devices:
        print(SoundDeviceMicSource.list_devices())
        return 0
    if args.list_languages:
        for name, tag in LANGUAGE_LOCALES.items():
            print(f"{name:<12} {tag}")
        return 0

    try:
        services = build_session_services(args, logger=logger)
    except Exception:
        summary = summarize_exception(traceback.format_exc())
        logger.exception("services_build_failed")
        print(f"Startup failed: {summary}", file=sys.stderr)
        print(f"Hint: {hint_for_exception(summary)}", file=sys.stderr)
        print(f"Logs: {log_path}", file=sys.stderr)
        return 1

    print(f"Logs: {log_path}")
    try:
        return asyncio.run(run_session(args, services, logger=logger))
    except KeyboardInterrupt:
        logger.info("app_interrupted")
        return 130
    finally:
        logger.info("app_quit", extra={"log_dir": str(log_dir)})


if __name__ == "__main__":
    raise SystemExit(main())
