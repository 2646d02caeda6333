import asyncio
import logging
from collections.abc import AsyncIterator

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake, InvalidURI
from websockets.protocol import State

from ports.transport import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    TransportClosed,
    TransportError,
    TransportMessage,
    TransportNotification,
    TransportOpened,
)

logger = logging.getLogger(__name__)


class WebSocketTransport:
    """Browser-style WebSocket: ``connect`` returns at once and everything that
    happens afterwards, including a failed handshake, arrives as a
    notification. The stream always ends with exactly one TransportClosed.
    """

    def __init__(self, open_timeout: float = 10.0, max_size: int = 10_000_000) -> None:
        self._open_timeout = open_timeout
        self._max_size = max_size
        self._websocket: ClientConnection | None = None
        self._queue: asyncio.Queue[TransportNotification] = asyncio.Queue()
        self._reader_task: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return self._websocket is not None and self._websocket.state is State.OPEN

    async def connect(self, url: str) -> None:
        self._reader_task = asyncio.create_task(self._read_loop(url))

    async def send(self, data: bytes) -> None:
        if not self.is_open:
            return
        try:
            await self._websocket.send(data)
        except ConnectionClosed:
            logger.warning("Dropped frame, connection already closed")

    async def close(self) -> None:
        if self._websocket is not None:
            await self._websocket.close()
        elif self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()

    async def notifications(self) -> AsyncIterator[TransportNotification]:
        while True:
            notification = await self._queue.get()
            yield notification
            if isinstance(notification, TransportClosed):
                return

    async def _read_loop(self, url: str) -> None:
        code, reason = ABNORMAL_CLOSURE, ""
        try:
            async with connect(
                url,
                open_timeout=self._open_timeout,
                max_size=self._max_size,
                ping_interval=None,
            ) as websocket:
                self._websocket = websocket
                logger.info("WebSocket connected to %s", url.split("?", 1)[0])
                self._queue.put_nowait(TransportOpened())
                async for message in websocket:
                    if isinstance(message, str):
                        message = message.encode("utf-8")
                    self._queue.put_nowait(TransportMessage(data=message))
                code = websocket.close_code or NORMAL_CLOSURE
                reason = websocket.close_reason or ""
        except ConnectionClosedError as exc:
            if exc.rcvd is None:
                self._queue.put_nowait(TransportError(detail=str(exc)))
            else:
                code, reason = exc.rcvd.code, exc.rcvd.reason
        except (OSError, InvalidHandshake, InvalidURI, asyncio.TimeoutError) as exc:
            logger.warning("WebSocket connection failed: %s", exc)
            self._queue.put_nowait(TransportError(detail=str(exc)))
            reason = str(exc)
        except asyncio.CancelledError:
            code, reason = NORMAL_CLOSURE, "cancelled before open"
            raise
        finally:
            self._websocket = None
            logger.info("WebSocket closed (code=%d, reason=%s)", code, reason or "-")
            self._queue.put_nowait(TransportClosed(code=code, reason=reason))
