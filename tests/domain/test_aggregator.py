from domain.aggregator import TranscriptAggregator, repair_encoding
from domain.events import TranscriptUpdated
from domain.messages import Alternative, Result, Transcript, TranscriptEvent
from domain.text_log import TextLog


def _event(text: str | None, is_partial: bool = False) -> TranscriptEvent:
    alternatives = [] if text is None else [Alternative(transcript=text)]
    return TranscriptEvent(
        transcript=Transcript(results=[Result(is_partial=is_partial, alternatives=alternatives)])
    )


class Recorder:
    def __init__(self) -> None:
        self.forwarded: list[tuple[str, bool]] = []
        self.events: list = []
        self.log = TextLog()
        self.aggregator = TranscriptAggregator(
            self.log, lambda text, partial: self.forwarded.append((text, partial)), self.events.append
        )


class TestRepairEncoding:
    def test_ascii_unchanged(self):
        assert repair_encoding("hello") == "hello"

    def test_mis_decoded_utf8_repaired(self):
        assert repair_encoding("cafÃ©") == "café"

    def test_correct_text_left_alone(self):
        assert repair_encoding("café") == "café"
        assert repair_encoding("안녕하세요") == "안녕하세요"


class TestTranscriptAggregator:
    def test_partial_then_final(self):
        recorder = Recorder()
        recorder.aggregator.handle(_event("hello", is_partial=True))
        recorder.aggregator.handle(_event("hello world"))

        assert recorder.log.lines == ["hello world"]
        assert recorder.forwarded == [("hello", True), ("hello world", False)]
        assert recorder.events[0] == TranscriptUpdated(
            timestamp=recorder.events[0].timestamp, text="hello\n", is_partial=True
        )
        assert recorder.events[1].text == "hello world\n"
        assert recorder.events[1].is_partial is False

    def test_partial_view_follows_committed_lines(self):
        recorder = Recorder()
        recorder.aggregator.handle(_event("first"))
        recorder.aggregator.handle(_event("sec", is_partial=True))
        assert recorder.events[-1].text == "first\nsec\n"
        assert recorder.log.lines == ["first"]

    def test_empty_results_ignored(self):
        recorder = Recorder()
        recorder.aggregator.handle(TranscriptEvent(transcript=Transcript(results=[])))
        assert recorder.events == []
        assert recorder.forwarded == []

    def test_result_without_alternatives_ignored(self):
        recorder = Recorder()
        recorder.aggregator.handle(_event(None))
        assert recorder.events == []
        assert recorder.forwarded == []

    def test_blank_final_not_committed(self):
        recorder = Recorder()
        recorder.aggregator.handle(_event("  "))
        assert recorder.log.lines == []

    def test_final_is_repaired_before_commit(self):
        recorder = Recorder()
        recorder.aggregator.handle(_event("cafÃ©"))
        assert recorder.log.lines == ["café"]
        assert recorder.forwarded == [("café", False)]
