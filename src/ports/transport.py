from dataclasses import dataclass
from typing import AsyncIterator, Protocol

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


@dataclass(frozen=True)
class TransportOpened:
    pass


@dataclass(frozen=True)
class TransportMessage:
    data: bytes


@dataclass(frozen=True)
class TransportError:
    detail: str = ""


@dataclass(frozen=True)
class TransportClosed:
    code: int = NORMAL_CLOSURE
    reason: str = ""


TransportNotification = TransportOpened | TransportMessage | TransportError | TransportClosed


class TransportPort(Protocol):
    @property
    def is_open(self) -> bool: ...
    async def connect(self, url: str) -> None: ...
    async def send(self, data: bytes) -> None: ...
    async def close(self) -> None: ...
    def notifications(self) -> AsyncIterator[TransportNotification]: ...
