import asyncio
import logging
from collections.abc import Callable

from domain.errors import TranslationServiceError
from domain.events import DomainEvent, TranslationFailed, TranslationUpdated
from domain.text_log import TextLog
from ports.translator import TranslatorPort

logger = logging.getLogger(__name__)


def primary_language(code: str) -> str:
    return code[:2].lower()


class TranslationDispatcher:
    """Issues one translation per forwarded fragment and applies the results in
    the order the fragments were forwarded.

    Every fragment gets a sequence index when it is submitted. Responses that
    arrive early wait in ``_completed`` until all lower indexes are applied, so
    a slow partial can never land after (or duplicate) the final that replaced
    it.
    """

    def __init__(
        self,
        translator: TranslatorPort,
        source_language: str,
        target_language: str,
        log: TextLog,
        publish: Callable[[DomainEvent], None],
    ) -> None:
        self._translator = translator
        self._source_language = primary_language(source_language)
        self._target_language = primary_language(target_language)
        self._log = log
        self._publish = publish
        self._next_index = 0
        self._next_to_apply = 0
        self._completed: dict[int, tuple[str | None, bool, int]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._sealed = False

    @property
    def log(self) -> TextLog:
        return self._log

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, text: str, is_partial: bool) -> int | None:
        if not text:
            return None
        index = self._next_index
        self._next_index += 1
        task = asyncio.create_task(self._translate(index, text, is_partial, self._log.epoch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return index

    def seal(self) -> None:
        self._sealed = True

    async def wait_idle(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _translate(self, index: int, text: str, is_partial: bool, epoch: int) -> None:
        translated: str | None = None
        try:
            translated = await self._translator.translate(
                text, self._source_language, self._target_language
            )
        except TranslationServiceError as exc:
            logger.warning("Translation %d failed: %s", index, exc)
            if not self._sealed:
                self._publish(TranslationFailed(message=str(exc)))
        finally:
            self._completed[index] = (translated, is_partial, epoch)
            self._apply_in_order()

    def _apply_in_order(self) -> None:
        while self._next_to_apply in self._completed:
            translated, is_partial, epoch = self._completed.pop(self._next_to_apply)
            self._next_to_apply += 1
            if translated is None or self._sealed or epoch != self._log.epoch:
                continue
            if is_partial:
                view = self._log.render(translated)
            else:
                logger.info("Translation: %s", translated)
                self._log.append(translated)
                view = self._log.render()
            self._publish(TranslationUpdated(text=view, is_partial=is_partial))
