class InterpreterError(Exception):
    pass


class CaptureUnavailable(InterpreterError):
    pass


class SessionConnectionError(InterpreterError):
    pass


class MalformedFrame(InterpreterError):
    pass


class ServiceException(InterpreterError):
    def __init__(self, message: str, exception_type: str = "") -> None:
        super().__init__(message)
        self.exception_type = exception_type


class StreamingException(InterpreterError):
    def __init__(self, reason: str, code: int | None = None) -> None:
        super().__init__(reason)
        self.code = code


class TranslationServiceError(InterpreterError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionBusyError(InterpreterError):
    pass
