from enum import Enum, auto


class SessionState(Enum):
    IDLE = auto()
    CONNECTING = auto()
    OPEN = auto()
    CLOSING = auto()
    CLOSED = auto()
    ERROR_CLOSED = auto()
    EXCEPTION_CLOSED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {SessionState.CLOSED, SessionState.ERROR_CLOSED, SessionState.EXCEPTION_CLOSED}
)

VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.CONNECTING},
    SessionState.CONNECTING: {
        SessionState.OPEN,
        SessionState.CLOSING,
        SessionState.CLOSED,
        SessionState.ERROR_CLOSED,
    },
    SessionState.OPEN: {
        SessionState.CLOSING,
        SessionState.CLOSED,
        SessionState.ERROR_CLOSED,
        SessionState.EXCEPTION_CLOSED,
    },
    SessionState.CLOSING: {
        SessionState.CLOSED,
        SessionState.ERROR_CLOSED,
        SessionState.EXCEPTION_CLOSED,
    },
    SessionState.CLOSED: set(),
    SessionState.ERROR_CLOSED: set(),
    SessionState.EXCEPTION_CLOSED: set(),
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
