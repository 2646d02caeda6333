import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from config import LiveInterpreterConfig
from domain.errors import CaptureUnavailable, SessionBusyError
from domain.events import DomainEvent, SessionFailed, TranscriptUpdated, TranslationUpdated
from domain.interpreter import LiveInterpreter
from log_format import configure_logging
from ports.control import ACTIONS, RESET, START, STATUS, STOP, ControlCommand

ENV_FILE_PATH = Path.home() / ".config" / "live-interpreter" / "env"


def _load_env_file() -> None:
    if not ENV_FILE_PATH.exists():
        return
    with open(ENV_FILE_PATH) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def main() -> None:
    _load_env_file()
    parser = argparse.ArgumentParser(description="Live speech transcription and translation")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--autostart", action="store_true", help="Start a session as soon as the daemon is up")

    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser(START, help="Start streaming")
    start_parser.add_argument("--source", help="Source language code, e.g. en-US")
    start_parser.add_argument("--target", help="Target language code, e.g. ko")
    start_parser.add_argument("--region", help="AWS region")

    subparsers.add_parser(STOP, help="Stop streaming")
    subparsers.add_parser(RESET, help="Clear transcript and translation")
    subparsers.add_parser(STATUS, help="Query session status")

    args = parser.parse_args()

    config = LiveInterpreterConfig()
    configure_logging(verbose=args.verbose, log_file=config.log_file)

    if args.command in ACTIONS:
        asyncio.run(_run_client_command(args, config))
    else:
        asyncio.run(_run_daemon(config, autostart=args.autostart))


async def _run_client_command(args: argparse.Namespace, config: LiveInterpreterConfig) -> None:
    from adapters.unix_control import UnixSocketControlClient

    client = UnixSocketControlClient(socket_path=config.socket_path)

    payload = None
    if args.command == START:
        payload = {
            key: value
            for key, value in (
                ("source_language", args.source),
                ("target_language", args.target),
                ("region", args.region),
            )
            if value
        }

    try:
        result = await client.send_command(args.command, payload)
        print(f"{result}")
        if result.get("status") != "ok":
            sys.exit(1)
    except ConnectionRefusedError:
        print("Live interpreter is not running", file=sys.stderr)
        sys.exit(1)
    except FileNotFoundError:
        print("Live interpreter is not running", file=sys.stderr)
        sys.exit(1)


async def execute_command(
    interpreter: LiveInterpreter,
    config: LiveInterpreterConfig,
    command: ControlCommand,
) -> dict:
    payload = command.payload or {}
    if command.action == START:
        try:
            await interpreter.start(
                source_language=payload.get("source_language", config.source_language),
                target_language=payload.get("target_language", config.target_language),
                region=payload.get("region", config.region),
                credentials=config.credentials(),
            )
        except (SessionBusyError, CaptureUnavailable) as exc:
            return {"status": "error", "action": START, "error": type(exc).__name__, "message": str(exc)}
        return {"status": "ok", "action": START, "state": interpreter.state.name}

    if command.action == STOP:
        await interpreter.stop()
        return {"status": "ok", "action": STOP, "state": interpreter.state.name}

    if command.action == RESET:
        interpreter.reset()
        return {"status": "ok", "action": RESET}

    if command.action == STATUS:
        session = interpreter.session
        failure = session.failure if session else None
        return {
            "status": "ok",
            "action": STATUS,
            "state": interpreter.state.name,
            "transcript_lines": len(interpreter.transcript_log),
            "translation_lines": len(interpreter.translation_log),
            "failure": f"{type(failure).__name__}: {failure}" if failure else None,
        }

    return {"status": "error", "action": command.action, "message": f"Unknown action: {command.action}"}


def render_event(event: DomainEvent) -> str | None:
    if isinstance(event, TranscriptUpdated) and not event.is_partial:
        lines = event.text.rstrip("\n").splitlines()
        return f"[transcript]  {lines[-1]}" if lines else None
    if isinstance(event, TranslationUpdated) and not event.is_partial:
        lines = event.text.rstrip("\n").splitlines()
        return f"[translation] {lines[-1]}" if lines else None
    if isinstance(event, SessionFailed):
        return f"[error] {event.kind}: {event.message}"
    return None


async def _run_daemon(config: LiveInterpreterConfig, autostart: bool = False) -> None:
    from health import run_startup_checks, has_critical_failures
    from factory import create_application

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        sys.exit(1)

    interpreter, control = create_application(config)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logging.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logging.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await control.start()

    async def control_loop() -> None:
        async for command, reply in control.commands():
            response = await execute_command(interpreter, config, command)
            if not reply.done():
                reply.set_result(response)

    async def display_loop() -> None:
        async for event in interpreter.events():
            line = render_event(event)
            if line:
                print(line, flush=True)

    control_task = asyncio.create_task(control_loop())
    display_task = asyncio.create_task(display_loop())

    if autostart:
        response = await execute_command(interpreter, config, ControlCommand(action=START))
        logging.info("Autostart: %s", response)

    try:
        await shutdown_event.wait()
    finally:
        await interpreter.shutdown()
        for task in (control_task, display_task):
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
        await control.stop()


if __name__ == "__main__":
    main()
