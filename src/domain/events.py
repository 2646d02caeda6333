from dataclasses import dataclass, field
from time import time

from domain.state import SessionState


@dataclass(frozen=True)
class DomainEvent:
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True)
class StateChanged(DomainEvent):
    state: SessionState = SessionState.IDLE


@dataclass(frozen=True)
class TranscriptUpdated(DomainEvent):
    text: str = ""
    is_partial: bool = False


@dataclass(frozen=True)
class TranslationUpdated(DomainEvent):
    text: str = ""
    is_partial: bool = False


@dataclass(frozen=True)
class SessionFailed(DomainEvent):
    kind: str = ""
    message: str = ""


@dataclass(frozen=True)
class TranslationFailed(DomainEvent):
    message: str = ""


@dataclass(frozen=True)
class LogsReset(DomainEvent):
    pass
