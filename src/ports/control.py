import asyncio
from dataclasses import dataclass
from typing import Protocol, AsyncIterator

START = "start"
STOP = "stop"
RESET = "reset"
STATUS = "status"

ACTIONS = (START, STOP, RESET, STATUS)


@dataclass(frozen=True)
class ControlCommand:
    action: str
    payload: dict | None = None


class ControlPort(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def commands(self) -> AsyncIterator[tuple[ControlCommand, asyncio.Future]]: ...
