import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.errors import MalformedFrame
from domain.eventstream import HeaderValue, WireMessage

MESSAGE_TYPE = ":message-type"
EVENT_TYPE = ":event-type"
EXCEPTION_TYPE = ":exception-type"
CONTENT_TYPE = ":content-type"

EVENT_MESSAGE = "event"
AUDIO_EVENT = "AudioEvent"
TRANSCRIPT_EVENT = "TranscriptEvent"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Alternative(_WireModel):
    transcript: str = Field(default="", alias="Transcript")


class Result(_WireModel):
    is_partial: bool = Field(default=False, alias="IsPartial")
    alternatives: list[Alternative] = Field(default_factory=list, alias="Alternatives")
    result_id: str = Field(default="", alias="ResultId")


class Transcript(_WireModel):
    results: list[Result] = Field(default_factory=list, alias="Results")


class TranscriptEvent(_WireModel):
    transcript: Transcript = Field(alias="Transcript")


class ServiceExceptionEvent(_WireModel):
    message: str = Field(default="", alias="Message")
    exception_type: str = ""


InboundEvent = TranscriptEvent | ServiceExceptionEvent


def audio_event(pcm: bytes) -> WireMessage:
    return WireMessage(
        headers={
            MESSAGE_TYPE: HeaderValue.string(EVENT_MESSAGE),
            EVENT_TYPE: HeaderValue.string(AUDIO_EVENT),
            CONTENT_TYPE: HeaderValue.string("application/octet-stream"),
        },
        payload=bytes(pcm),
    )


def end_of_stream() -> WireMessage:
    return audio_event(b"")


def parse_inbound(message: WireMessage) -> InboundEvent | None:
    """Validate an inbound frame against the event or exception schema.

    Returns None for well-formed events of a type other than TranscriptEvent.
    Raises MalformedFrame when headers or the JSON body do not fit the schema.
    """
    message_type = message.header(MESSAGE_TYPE)
    if not isinstance(message_type, str):
        raise MalformedFrame(f"Missing {MESSAGE_TYPE} header")

    try:
        # Bytes map one to one onto code points; text fields are re-decoded as
        # UTF-8 by repair_encoding.
        body = json.loads(message.payload.decode("latin-1")) if message.payload else {}
        if message_type != EVENT_MESSAGE:
            event = ServiceExceptionEvent.model_validate(body)
            exception_type = message.header(EXCEPTION_TYPE, "")
            return event.model_copy(update={"exception_type": str(exception_type)})

        event_type = message.header(EVENT_TYPE, TRANSCRIPT_EVENT)
        if event_type != TRANSCRIPT_EVENT:
            return None
        return TranscriptEvent.model_validate(body)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise MalformedFrame(f"Invalid {message_type} payload: {exc}") from exc
