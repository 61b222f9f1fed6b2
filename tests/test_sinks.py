"""
Tests for the ready-made speak sinks.
"""
import io
import logging

from thus_spoke_npc.sinks import FanoutSink, LoggingSink, PrintSink, TranscriptSink


class TestTranscriptSink:

    def test_records_lines_per_npc(self):
        transcript = TranscriptSink()
        transcript("a", "one", {"x": 1})
        transcript("b", "two", {})
        transcript("a", "three", {})

        assert transcript.texts("a") == ["one", "three"]
        assert transcript.texts("b") == ["two"]
        assert transcript.last("a").text == "three"
        assert transcript.lines("a")[0].rewards == {"x": 1}

    def test_rewards_are_copied(self):
        transcript = TranscriptSink()
        rewards = {"gold": 1}
        transcript("a", "hi", rewards)
        rewards["gold"] = 99
        assert transcript.last("a").rewards == {"gold": 1}

    def test_max_lines(self):
        transcript = TranscriptSink(max_lines=2)
        for text in ("a", "b", "c"):
            transcript(1, text, {})
        assert transcript.texts(1) == ["b", "c"]

    def test_limit(self):
        transcript = TranscriptSink()
        for text in ("a", "b", "c"):
            transcript(1, text, {})
        assert [u.text for u in transcript.lines(1, limit=2)] == ["b", "c"]
        assert transcript.lines(1, limit=0) == []

    def test_unknown_npc(self):
        transcript = TranscriptSink()
        assert transcript.lines("ghost") == []
        assert transcript.last("ghost") is None

    def test_clear(self):
        transcript = TranscriptSink()
        transcript("a", "x", {})
        transcript("b", "y", {})
        transcript.clear("a")
        assert transcript.texts("a") == []
        assert transcript.texts("b") == ["y"]
        transcript.clear()
        assert transcript.texts("b") == []

    def test_to_dict(self):
        transcript = TranscriptSink()
        transcript("a", "x", {"k": True})
        data = transcript.last("a").to_dict()
        assert data["npc_id"] == "a"
        assert data["text"] == "x"
        assert data["rewards"] == {"k": True}
        assert "time" in data


class TestPrintSink:

    def test_prints_line_with_rewards(self):
        stream = io.StringIO()
        PrintSink(stream)("guard", "Halt!", {"bounty": 40})
        assert stream.getvalue() == "guard: Halt!  [bounty=40]\n"

    def test_hides_rewards(self):
        stream = io.StringIO()
        PrintSink(stream, show_rewards=False)("guard", "Halt!", {"bounty": 40})
        assert stream.getvalue() == "guard: Halt!\n"

    def test_no_rewards(self):
        stream = io.StringIO()
        PrintSink(stream)(1, "Hello!", {})
        assert stream.getvalue() == "1: Hello!\n"


class TestLoggingSink:

    def test_logs_with_structured_fields(self, caplog):
        caplog.set_level(logging.INFO, logger="thus_spoke_npc.speech")
        LoggingSink()("inn", "Welcome!", {"room": True})

        record = caplog.records[-1]
        assert record.getMessage() == "Welcome!"
        assert record.npc_id == "inn"
        assert record.subsystem == "speech"
        assert record.rewards == {"room": True}


class TestFanoutSink:

    def test_forwards_to_all(self):
        first, second = TranscriptSink(), TranscriptSink()
        FanoutSink(first, second)("a", "hi", {})
        assert first.texts("a") == ["hi"]
        assert second.texts("a") == ["hi"]
