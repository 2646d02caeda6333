import asyncio
import logging
from collections.abc import Callable

from domain import eventstream
from domain.aggregator import TranscriptAggregator, repair_encoding
from domain.dispatcher import TranslationDispatcher
from domain.errors import (
    InterpreterError,
    MalformedFrame,
    ServiceException,
    SessionConnectionError,
    StreamingException,
)
from domain.events import DomainEvent, SessionFailed, StateChanged
from domain.messages import ServiceExceptionEvent, audio_event, end_of_stream, parse_inbound
from domain.resampler import encode_audio
from domain.state import SessionState, validate_transition
from ports.audio import AudioSourcePort
from ports.transport import (
    NORMAL_CLOSURE,
    TransportClosed,
    TransportError,
    TransportMessage,
    TransportNotification,
    TransportOpened,
    TransportPort,
)

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_TIMEOUT_SECONDS = 5.0


class StreamingSession:
    def __init__(
        self,
        capture: AudioSourcePort,
        transport: TransportPort,
        aggregator: TranscriptAggregator,
        dispatcher: TranslationDispatcher,
        url: str,
        target_sample_rate: int,
        publish: Callable[[DomainEvent], None],
        buffer_until_open: bool = False,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT_SECONDS,
    ) -> None:
        self._capture = capture
        self._transport = transport
        self._aggregator = aggregator
        self._dispatcher = dispatcher
        self._url = url
        self._target_sample_rate = target_sample_rate
        self._publish = publish
        self._buffer_until_open = buffer_until_open
        self._close_timeout = close_timeout

        self._state = SessionState.IDLE
        self._failure: InterpreterError | None = None
        self._audio_stopped = False
        self._held_frames: list[bytes] = []
        self._frames_sent = 0
        self._frames_dropped = 0
        self._send_lock = asyncio.Lock()
        self._pump_task: asyncio.Task | None = None
        self._close_timer: asyncio.Task | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def failure(self) -> InterpreterError | None:
        return self._failure

    @property
    def finished(self) -> bool:
        return self._state.is_terminal

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    @property
    def frames_dropped(self) -> int:
        return self._frames_dropped

    @property
    def dispatcher(self) -> TranslationDispatcher:
        return self._dispatcher

    def _transition_to(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.name, target.name)
        self._state = target
        self._publish(StateChanged(state=target))

    async def open(self) -> None:
        await self._capture.start()
        self._transition_to(SessionState.CONNECTING)
        self._pump_task = asyncio.create_task(self._pump_audio())
        try:
            await self._transport.connect(self._url)
        except Exception:
            await self._stop_audio()
            self._pump_task.cancel()
            self._transition_to(SessionState.ERROR_CLOSED)
            raise

    async def run(self) -> None:
        try:
            async for notification in self._transport.notifications():
                await self._handle_notification(notification)
                if isinstance(notification, TransportClosed):
                    break
        finally:
            await self._stop_audio()
            if self._close_timer and not self._close_timer.done():
                self._close_timer.cancel()
            if self._pump_task and not self._pump_task.done():
                self._pump_task.cancel()
            logger.info(
                "Session ended in %s (sent=%d dropped=%d)",
                self._state.name,
                self._frames_sent,
                self._frames_dropped,
            )

    async def stop(self) -> None:
        if self._state == SessionState.OPEN:
            self._transition_to(SessionState.CLOSING)
            async with self._send_lock:
                await self._send(eventstream.encode(end_of_stream()))
            await self._stop_audio()
            self._close_timer = asyncio.create_task(self._close_after_timeout())
        elif self._state == SessionState.CONNECTING:
            self._transition_to(SessionState.CLOSING)
            await self._stop_audio()
            await self._transport.close()
        else:
            logger.debug("Stop ignored in state %s", self._state.name)

    async def _handle_notification(self, notification: TransportNotification) -> None:
        if isinstance(notification, TransportOpened):
            if self._state != SessionState.CONNECTING:
                return
            self._transition_to(SessionState.OPEN)
            async with self._send_lock:
                held, self._held_frames = self._held_frames, []
                for frame in held:
                    await self._send(frame)
        elif isinstance(notification, TransportMessage):
            await self._handle_message(notification.data)
        elif isinstance(notification, TransportError):
            await self._fail(
                SessionState.ERROR_CLOSED,
                SessionConnectionError(notification.detail or "WebSocket connection error"),
            )
        elif isinstance(notification, TransportClosed):
            await self._handle_close(notification)

    async def _handle_message(self, data: bytes) -> None:
        if self._state.is_terminal:
            return
        try:
            event = parse_inbound(eventstream.decode(data))
        except MalformedFrame as exc:
            await self._fail(SessionState.ERROR_CLOSED, SessionConnectionError(f"Malformed frame: {exc}"))
            await self._transport.close()
            return

        if isinstance(event, ServiceExceptionEvent):
            await self._fail(
                SessionState.EXCEPTION_CLOSED,
                ServiceException(repair_encoding(event.message), event.exception_type),
            )
            await self._transport.close()
        elif event is not None:
            self._aggregator.handle(event)

    async def _handle_close(self, notification: TransportClosed) -> None:
        await self._stop_audio()
        if self._state.is_terminal:
            # A close always follows the error or exception that ended the
            # session; that failure has already been surfaced.
            logger.debug("Close after %s (code=%d)", self._state.name, notification.code)
            return

        if notification.code == NORMAL_CLOSURE:
            self._transition_to(SessionState.CLOSED)
            return

        error = StreamingException(
            notification.reason or f"Connection closed with code {notification.code}",
            notification.code,
        )
        self._failure = error
        self._transition_to(SessionState.CLOSED)
        self._surface(error)

    async def _fail(self, target: SessionState, error: InterpreterError) -> None:
        if self._state.is_terminal:
            return
        self._failure = error
        self._transition_to(target)
        self._surface(error)
        await self._stop_audio()

    def _surface(self, error: InterpreterError) -> None:
        logger.error("%s: %s", type(error).__name__, error)
        self._dispatcher.seal()
        self._publish(SessionFailed(kind=type(error).__name__, message=str(error)))

    async def _stop_audio(self) -> None:
        if self._audio_stopped:
            return
        self._audio_stopped = True
        await self._capture.stop()

    async def _pump_audio(self) -> None:
        async for buffer in self._capture.read_buffers():
            if self._audio_stopped:
                break
            pcm = encode_audio(buffer, self._target_sample_rate)
            if not pcm:
                # An empty AudioEvent is the end-of-stream marker.
                continue
            frame = eventstream.encode(audio_event(pcm))
            async with self._send_lock:
                if self._state == SessionState.OPEN and self._transport.is_open:
                    await self._send(frame)
                elif self._state == SessionState.CONNECTING and self._buffer_until_open:
                    self._held_frames.append(frame)
                else:
                    self._frames_dropped += 1

    async def _send(self, frame: bytes) -> None:
        await self._transport.send(frame)
        self._frames_sent += 1

    async def _close_after_timeout(self) -> None:
        try:
            await asyncio.sleep(self._close_timeout)
        except asyncio.CancelledError:
            return
        if not self._state.is_terminal:
            logger.warning("No close from service after %.1fs, closing stream", self._close_timeout)
            await self._transport.close()
