import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path

from ports.control import ACTIONS, ControlCommand

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/tmp/live-interpreter.sock"
REQUEST_TIMEOUT_SECONDS = 5.0
# A start waits for the previous session's translations, so replies can be slow.
REPLY_TIMEOUT_SECONDS = 15.0


class InvalidRequest(ValueError):
    pass


def encode_line(message: dict) -> bytes:
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


def parse_request(raw: bytes) -> ControlCommand:
    """Turn one request line into a command.

    A request is a JSON object with an ``action`` from ``ports.control.ACTIONS``
    and an optional ``payload`` object.
    """
    try:
        request = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidRequest(f"Invalid JSON: {exc}") from exc
    if not isinstance(request, dict):
        raise InvalidRequest("Request must be a JSON object")

    action = request.get("action")
    if action not in ACTIONS:
        raise InvalidRequest(f"Unknown action: {action!r}")
    payload = request.get("payload")
    if payload is not None and not isinstance(payload, dict):
        raise InvalidRequest("Payload must be a JSON object")
    return ControlCommand(action=action, payload=payload)


def _error_reply(action: object, message: str) -> dict:
    return {"status": "error", "action": action, "message": message}


class UnixSocketControlServer:
    """Line-delimited JSON control socket for a running daemon.

    Each connection carries one request and one reply. Valid requests are
    queued as ``(command, reply_future)`` for the daemon's control loop;
    malformed ones are answered here without reaching the interpreter.
    """

    def __init__(self, socket_path: str = DEFAULT_SOCKET_PATH, reply_timeout: float = REPLY_TIMEOUT_SECONDS) -> None:
        self._socket_path = Path(socket_path)
        self._reply_timeout = reply_timeout
        self._server: asyncio.Server | None = None
        self._pending: asyncio.Queue[tuple[ControlCommand, asyncio.Future]] = asyncio.Queue()

    async def start(self) -> None:
        self._remove_stale_socket()
        self._server = await asyncio.start_unix_server(self._serve, path=str(self._socket_path))
        os.chmod(self._socket_path, 0o600)
        logger.info("Control socket listening at %s", self._socket_path)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self._remove_stale_socket()
        logger.info("Control socket closed")

    async def commands(self) -> AsyncIterator[tuple[ControlCommand, asyncio.Future]]:
        while True:
            yield await self._pending.get()

    def _remove_stale_socket(self) -> None:
        if self._socket_path.exists():
            self._socket_path.unlink()

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=REQUEST_TIMEOUT_SECONDS)
            if not raw.strip():
                return
            writer.write(encode_line(await self._dispatch(raw)))
            await writer.drain()
        except asyncio.TimeoutError:
            logger.warning("Control client sent no request")
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Control client went away before the reply")
        finally:
            writer.close()
            await writer.wait_closed()

    async def _dispatch(self, raw: bytes) -> dict:
        try:
            command = parse_request(raw)
        except InvalidRequest as exc:
            logger.warning("Rejected control request: %s", exc)
            return _error_reply(None, str(exc))

        reply: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._pending.put((command, reply))
        try:
            return await asyncio.wait_for(asyncio.shield(reply), timeout=self._reply_timeout)
        except asyncio.TimeoutError:
            reply.cancel()
            logger.warning("No reply to %s within %.0fs", command.action, self._reply_timeout)
            return _error_reply(command.action, "Timed out waiting for the interpreter")


class UnixSocketControlClient:
    def __init__(self, socket_path: str = DEFAULT_SOCKET_PATH) -> None:
        self._socket_path = socket_path

    async def send_command(self, action: str, payload: dict | None = None) -> dict:
        request: dict = {"action": action}
        if payload:
            request["payload"] = payload

        reader, writer = await asyncio.open_unix_connection(self._socket_path)
        try:
            writer.write(encode_line(request))
            await writer.drain()
            raw = await asyncio.wait_for(reader.readline(), timeout=REPLY_TIMEOUT_SECONDS + REQUEST_TIMEOUT_SECONDS)
        finally:
            writer.close()
            await writer.wait_closed()
        if not raw:
            return _error_reply(action, "Interpreter closed the connection without replying")
        return json.loads(raw.decode("utf-8"))
