import asyncio
import json
from collections.abc import AsyncIterator

import numpy as np
import pytest

from domain import eventstream
from domain.aggregator import TranscriptAggregator
from domain.dispatcher import TranslationDispatcher
from domain.errors import CaptureUnavailable, TranslationServiceError
from domain.eventstream import HeaderValue, WireMessage
from domain.resampler import AudioSampleBuffer
from domain.session import StreamingSession
from domain.text_log import TextLog
from ports.transport import TransportClosed, TransportError, TransportMessage, TransportOpened


NATIVE_SAMPLE_RATE = 48000
TARGET_SAMPLE_RATE = 16000


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def generate_sine_buffer(
    duration_ms: int = 100,
    frequency: float = 440.0,
    amplitude: float = 0.5,
    sample_rate: int = NATIVE_SAMPLE_RATE,
) -> AudioSampleBuffer:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    samples = (np.sin(2 * np.pi * frequency * t) * amplitude).astype(np.float32)
    return AudioSampleBuffer(samples, sample_rate)


def transcript_frame(text: str, is_partial: bool = False, ascii_only: bool = True) -> bytes:
    body = {
        "Transcript": {
            "Results": [
                {
                    "IsPartial": is_partial,
                    "ResultId": "r-1",
                    "Alternatives": [{"Transcript": text}],
                }
            ]
        }
    }
    return eventstream.encode(
        WireMessage(
            headers={
                ":message-type": HeaderValue.string("event"),
                ":event-type": HeaderValue.string("TranscriptEvent"),
                ":content-type": HeaderValue.string("application/json"),
            },
            payload=json.dumps(body, ensure_ascii=ascii_only).encode("utf-8"),
        )
    )


def exception_frame(message: str, exception_type: str = "BadRequestException", ascii_only: bool = True) -> bytes:
    return eventstream.encode(
        WireMessage(
            headers={
                ":message-type": HeaderValue.string("exception"),
                ":exception-type": HeaderValue.string(exception_type),
                ":content-type": HeaderValue.string("application/json"),
            },
            payload=json.dumps({"Message": message}, ensure_ascii=ascii_only).encode("utf-8"),
        )
    )


class FakeAudioSource:
    def __init__(self, sample_rate: int = NATIVE_SAMPLE_RATE, fail: bool = False) -> None:
        self._sample_rate = sample_rate
        self._fail = fail
        self._queue: asyncio.Queue[AudioSampleBuffer | None] = asyncio.Queue()
        self.start_count = 0
        self.stop_count = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    async def start(self) -> None:
        if self._fail:
            raise CaptureUnavailable("Permission denied")
        self.start_count += 1
        self._queue = asyncio.Queue()

    async def stop(self) -> None:
        self.stop_count += 1
        self._queue.put_nowait(None)

    def feed(self, buffer: AudioSampleBuffer) -> None:
        self._queue.put_nowait(buffer)

    async def read_buffers(self) -> AsyncIterator[AudioSampleBuffer]:
        queue = self._queue
        while True:
            buffer = await queue.get()
            if buffer is None:
                return
            yield buffer


class FakeTransport:
    def __init__(self, auto_open: bool = True) -> None:
        self._auto_open = auto_open
        self._queue: asyncio.Queue = asyncio.Queue()
        self._open = False
        self._closed = False
        self.close_emits = True
        self.connect_error: Exception | None = None
        self.url: str | None = None
        self.sent: list[bytes] = []
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self, url: str) -> None:
        self.url = url
        if self.connect_error is not None:
            raise self.connect_error
        if self._auto_open:
            self.open()

    def open(self) -> None:
        self._open = True
        self._queue.put_nowait(TransportOpened())

    def deliver(self, data: bytes) -> None:
        self._queue.put_nowait(TransportMessage(data=data))

    def fail(self, detail: str = "connection reset") -> None:
        self._open = False
        self._queue.put_nowait(TransportError(detail=detail))

    def remote_close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._open = False
        self._closed = True
        self._queue.put_nowait(TransportClosed(code=code, reason=reason))

    async def send(self, data: bytes) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_emits:
            self.remote_close(1000)

    async def notifications(self):
        while True:
            notification = await self._queue.get()
            yield notification
            if isinstance(notification, TransportClosed):
                return

    def sent_messages(self) -> list[WireMessage]:
        return [eventstream.decode(frame) for frame in self.sent]


class FakeTranslator:
    def __init__(self, manual: bool = False) -> None:
        self._manual = manual
        self.requests: list[tuple[str, str, str]] = []
        self._futures: list[asyncio.Future] = []
        self.closed = False

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        self.requests.append((text, source_language, target_language))
        if not self._manual:
            return f"{target_language}:{text}"
        future = asyncio.get_running_loop().create_future()
        self._futures.append(future)
        return await future

    def complete(self, index: int) -> None:
        text, _, target_language = self.requests[index]
        self._futures[index].set_result(f"{target_language}:{text}")

    def reject(self, index: int, message: str = "Throttled") -> None:
        self._futures[index].set_exception(TranslationServiceError(message, 400))

    async def aclose(self) -> None:
        self.closed = True


class SessionHarness:
    def __init__(
        self,
        buffer_until_open: bool = False,
        auto_open: bool = True,
        manual: bool = False,
        capture_fails: bool = False,
    ) -> None:
        self.capture = FakeAudioSource(fail=capture_fails)
        self.transport = FakeTransport(auto_open=auto_open)
        self.translator = FakeTranslator(manual=manual)
        self.events: list = []
        self.transcript_log = TextLog()
        self.translation_log = TextLog()
        self.dispatcher = TranslationDispatcher(
            self.translator, "en-US", "ko", self.translation_log, self.events.append
        )
        self.aggregator = TranscriptAggregator(
            self.transcript_log, self.dispatcher.submit, self.events.append
        )
        self.session = StreamingSession(
            capture=self.capture,
            transport=self.transport,
            aggregator=self.aggregator,
            dispatcher=self.dispatcher,
            url="wss://transcribestreaming.us-east-1.amazonaws.com:8443/stream-transcription-websocket",
            target_sample_rate=TARGET_SAMPLE_RATE,
            publish=self.events.append,
            buffer_until_open=buffer_until_open,
            close_timeout=0.05,
        )
        self.run_task: asyncio.Task | None = None

    async def start(self) -> None:
        await self.session.open()
        self.run_task = asyncio.create_task(self.session.run())
        await settle()

    async def finish(self) -> None:
        await asyncio.wait_for(self.run_task, timeout=1.0)

    def events_of(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def harness():
    return SessionHarness()


@pytest.fixture
def fake_capture():
    return FakeAudioSource()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_translator():
    return FakeTranslator()


@pytest.fixture
def manual_translator():
    return FakeTranslator(manual=True)
