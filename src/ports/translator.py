from typing import Protocol


class TranslatorPort(Protocol):
    async def translate(self, text: str, source_language: str, target_language: str) -> str: ...
    async def aclose(self) -> None: ...
