import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from domain.aggregator import TranscriptAggregator
from domain.dispatcher import TranslationDispatcher
from domain.errors import SessionBusyError
from domain.events import DomainEvent, LogsReset
from domain.session import DEFAULT_CLOSE_TIMEOUT_SECONDS, StreamingSession
from domain.signing import AwsCredentials, transcribe_url
from domain.state import SessionState
from domain.text_log import TextLog
from ports.audio import AudioSourcePort
from ports.translator import TranslatorPort
from ports.transport import TransportPort

logger = logging.getLogger(__name__)

HIGH_RATE_LANGUAGES = ("en-US", "es-US")
HIGH_SAMPLE_RATE = 44100
LOW_SAMPLE_RATE = 8000


def sample_rate_for(
    language_code: str,
    high_rate_languages: tuple[str, ...] = HIGH_RATE_LANGUAGES,
    high_rate: int = HIGH_SAMPLE_RATE,
    low_rate: int = LOW_SAMPLE_RATE,
) -> int:
    return high_rate if language_code in high_rate_languages else low_rate


class LiveInterpreter:
    def __init__(
        self,
        capture: AudioSourcePort,
        transport_factory: Callable[[], TransportPort],
        translator_factory: Callable[[str, AwsCredentials], TranslatorPort],
        expiry_seconds: int = 15,
        buffer_until_open: bool = False,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT_SECONDS,
        sample_rate_policy: Callable[[str], int] = sample_rate_for,
    ) -> None:
        self._capture = capture
        self._transport_factory = transport_factory
        self._translator_factory = translator_factory
        self._expiry_seconds = expiry_seconds
        self._buffer_until_open = buffer_until_open
        self._close_timeout = close_timeout
        self._sample_rate_policy = sample_rate_policy

        self._transcript_log = TextLog()
        self._translation_log = TextLog()
        self._events: asyncio.Queue[DomainEvent] = asyncio.Queue()
        self._session: StreamingSession | None = None
        self._session_task: asyncio.Task | None = None
        self._starting = False

    @property
    def session(self) -> StreamingSession | None:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    @property
    def active(self) -> bool:
        return self._starting or (self._session is not None and not self._session.finished)

    @property
    def transcript_log(self) -> TextLog:
        return self._transcript_log

    @property
    def translation_log(self) -> TextLog:
        return self._translation_log

    async def events(self) -> AsyncIterator[DomainEvent]:
        while True:
            event = await self._events.get()
            yield event

    def _publish(self, event: DomainEvent) -> None:
        self._events.put_nowait(event)

    async def start(
        self,
        source_language: str,
        target_language: str,
        region: str,
        credentials: AwsCredentials,
    ) -> StreamingSession:
        if self.active:
            raise SessionBusyError(f"A session is already {self.state.name.lower()}")

        self._starting = True
        try:
            if self._session_task is not None and not self._session_task.done():
                # The previous session still has translations in flight and
                # they share the translation log.
                logger.info("Waiting for previous session translations to finish")
                await asyncio.wait([self._session_task])
            sample_rate = self._sample_rate_policy(source_language)
            url = transcribe_url(
                region=region,
                language_code=source_language,
                sample_rate=sample_rate,
                credentials=credentials,
                expires=self._expiry_seconds,
            )
            translator = self._translator_factory(region, credentials)
            dispatcher = TranslationDispatcher(
                translator,
                source_language,
                target_language,
                self._translation_log,
                self._publish,
            )
            aggregator = TranscriptAggregator(self._transcript_log, dispatcher.submit, self._publish)
            session = StreamingSession(
                capture=self._capture,
                transport=self._transport_factory(),
                aggregator=aggregator,
                dispatcher=dispatcher,
                url=url,
                target_sample_rate=sample_rate,
                publish=self._publish,
                buffer_until_open=self._buffer_until_open,
                close_timeout=self._close_timeout,
            )
            logger.info(
                "Starting session %s -> %s in %s at %d Hz",
                source_language, target_language, region, sample_rate,
            )
            try:
                await session.open()
            except Exception:
                await translator.aclose()
                raise
            self._session = session
            self._session_task = asyncio.create_task(self._run_session(session, translator))
            return session
        finally:
            self._starting = False

    async def stop(self) -> None:
        if self._session is not None:
            await self._session.stop()

    def reset(self) -> None:
        self._transcript_log.clear()
        self._translation_log.clear()
        logger.info("Transcript and translation logs cleared")
        self._publish(LogsReset())

    async def wait_closed(self) -> None:
        if self._session_task is not None:
            await asyncio.shield(self._session_task)

    async def shutdown(self) -> None:
        await self.stop()
        if self._session_task is not None and not self._session_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._session_task), timeout=self._close_timeout)
            except asyncio.TimeoutError:
                logger.warning("Session did not finish in %.1fs", self._close_timeout)
                self._session_task.cancel()

    async def _run_session(self, session: StreamingSession, translator: TranslatorPort) -> None:
        try:
            await session.run()
            await session.dispatcher.wait_idle()
        finally:
            await translator.aclose()
