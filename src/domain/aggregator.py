import logging
from collections.abc import Callable

from domain.events import DomainEvent, TranscriptUpdated
from domain.messages import TranscriptEvent
from domain.text_log import TextLog

logger = logging.getLogger(__name__)


def repair_encoding(text: str) -> str:
    try:
        return text.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return text


class TranscriptAggregator:
    def __init__(
        self,
        log: TextLog,
        forward: Callable[[str, bool], object],
        publish: Callable[[DomainEvent], None],
    ) -> None:
        self._log = log
        self._forward = forward
        self._publish = publish

    @property
    def log(self) -> TextLog:
        return self._log

    def handle(self, event: TranscriptEvent) -> None:
        results = event.transcript.results
        if not results or not results[0].alternatives:
            return

        result = results[0]
        text = repair_encoding(result.alternatives[0].transcript)
        self._publish(TranscriptUpdated(text=self._log.render(text), is_partial=result.is_partial))

        if result.is_partial:
            logger.debug("Transcript (partial): %s", text)
            self._forward(text, True)
            return

        logger.info("Transcript: %s", text)
        if text.strip():
            self._log.append(text)
        self._forward(text, False)
