"""
Tests for the rule text codec.
"""
import pytest

from thus_spoke_npc.codec import (
    as_mapping,
    as_messages,
    decode,
    decode_pairs,
    decode_scalar,
    encode,
    encode_pairs,
    encode_scalar,
)
from thus_spoke_npc.types import NpcMessage
from thus_spoke_npc.validation import FormatError, ValidationError


class TestScalars:

    def test_literal_tokens(self):
        assert encode_scalar(True) == "true"
        assert encode_scalar(False) == "false"
        assert encode_scalar(None) == "null"
        assert decode_scalar("true") is True
        assert decode_scalar("false") is False
        assert decode_scalar("null") is None

    def test_numbers(self):
        assert decode_scalar("42") == 42
        assert isinstance(decode_scalar("42"), int)
        assert decode_scalar("-3") == -3
        assert decode_scalar("2.5") == 2.5
        assert decode_scalar("1e3") == 1000.0

    def test_strings(self):
        assert decode_scalar("ring") == "ring"
        assert decode_scalar("") == ""
        assert decode_scalar("1_000") == "1_000"
        assert decode_scalar("nan") == "nan"
        assert decode_scalar("True") == "True"


class TestPairs:

    def test_encode(self):
        assert encode_pairs({"item": "ring", "count": 2, "ok": True}) == "item=ring,count=2,ok=true"

    def test_empty(self):
        assert encode_pairs({}) == ""
        assert decode_pairs("") == {}

    def test_decode(self):
        assert decode_pairs("item=ring,count=2,ok=true,x=null") == {
            "item": "ring", "count": 2, "ok": True, "x": None,
        }

    def test_empty_value_is_empty_string(self):
        assert decode_pairs("name=") == {"name": ""}

    @pytest.mark.parametrize("bad", ["item", "=ring", "a=b=c", "a=1,,b=2"])
    def test_malformed(self, bad):
        with pytest.raises(FormatError):
            decode_pairs(bad)

    @pytest.mark.parametrize("mapping", [
        {"a,b": 1},
        {"a": "x=y"},
        {"a": "x|y"},
        {"a": "x<<<y"},
        {"a": float("nan")},
    ])
    def test_reserved_characters_refused(self, mapping):
        with pytest.raises(FormatError):
            encode_pairs(mapping)


class TestEncodeDecode:

    def test_encode_format(self):
        messages = [
            NpcMessage({"greeting": True}, "Hello!"),
            NpcMessage({"item": "ring"}, "You found my ring!", {"gold": 50}),
        ]
        assert encode(messages) == (
            "greeting=true|Hello!|<<<"
            "item=ring|You found my ring!|gold=50<<<"
        )

    def test_roundtrip(self):
        messages = [
            NpcMessage({"greeting": True}, "Hello, friend!"),
            NpcMessage({"item": "ring", "range": 3}, "You found my ring!", {"gold": 50, "xp": 2.5}),
            NpcMessage({"banter": False, "mood": None}, "Hm.", {"flag": True}),
        ]
        assert decode(encode(messages)) == messages

    def test_encode_accepts_dicts(self):
        text = encode([{"conditions": {"a": 1}, "text": "A"}])
        assert text == "a=1|A|<<<"

    def test_empty(self):
        assert encode([]) == ""
        assert decode("") == []
        assert decode("   \n") == []

    def test_records_on_separate_lines(self):
        text = """
            greeting=true|Hello!|<<<
            item=ring|Mine!|gold=5<<<
        """
        messages = decode(text)
        assert [m.text for m in messages] == ["Hello!", "Mine!"]
        assert messages[1].rewards == {"gold": 5}

    def test_text_may_contain_commas_and_equals(self):
        messages = [NpcMessage({"a": 1}, "Well, 2+2=4.")]
        assert decode(encode(messages)) == messages

    def test_text_with_pipe_refused(self):
        with pytest.raises(FormatError):
            encode([NpcMessage({"a": 1}, "this|that")])

    def test_reward_ending_in_angle_bracket_refused(self):
        with pytest.raises(FormatError):
            encode([NpcMessage({"a": 1}, "hi", {"arrow": "<"})])

    def test_numeric_string_does_not_roundtrip(self):
        decoded = decode(encode([NpcMessage({"code": "42"}, "hi")]))
        assert decoded[0].conditions == {"code": 42}

    @pytest.mark.parametrize("message", [
        NpcMessage({" k": "v"}, "hi"),
        NpcMessage({"k": "v"}, "hi", {"note": "trail "}),
        NpcMessage({"k": "v "}, "hi"),
    ])
    def test_whitespace_at_record_edge_refused(self, message):
        with pytest.raises(FormatError):
            encode([message])

    def test_inner_whitespace_roundtrips(self):
        messages = [
            NpcMessage({"k": " v", "two words": "a b"}, " padded text ", {" note": "x"}),
            NpcMessage({"k": "v"}, "end", {"note": "x", "last": " y"}),
        ]
        assert decode(encode(messages)) == messages


class TestDecodeErrors:

    def test_missing_terminator(self):
        with pytest.raises(FormatError):
            decode("a=1|hi|")

    def test_wrong_field_count(self):
        with pytest.raises(FormatError):
            decode("a=1|hi<<<")
        with pytest.raises(FormatError):
            decode("a=1|hi|x=1|extra<<<")

    def test_bad_pair(self):
        with pytest.raises(FormatError):
            decode("a|hi|<<<")

    def test_invalid_message_becomes_format_error(self):
        with pytest.raises(FormatError) as exc:
            decode("|hi|<<<")
        assert isinstance(exc.value.__cause__, ValidationError)

    def test_empty_text(self):
        with pytest.raises(FormatError):
            decode("a=1||<<<")

    def test_not_a_string(self):
        with pytest.raises(FormatError):
            decode(None)


class TestCoercion:

    def test_as_mapping(self):
        assert as_mapping(None) == {}
        assert as_mapping(" item=ring ") == {"item": "ring"}
        assert as_mapping({"a": 1}) == {"a": 1}

    def test_as_messages(self):
        assert as_messages(None) == []
        assert as_messages("a=1|A|<<<") == [NpcMessage({"a": 1}, "A")]
        assert as_messages([{"conditions": {"a": 1}, "text": "A"}]) == [NpcMessage({"a": 1}, "A")]

    def test_as_messages_validates_dicts(self):
        with pytest.raises(ValidationError):
            as_messages([{"conditions": {"a": 1}}])
