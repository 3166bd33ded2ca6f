import pytest
from pydantic import BaseModel

from tagette import MalformedReplyError
from tagette.utils.parsing import parse_reply, reply_text


class _Reply(BaseModel):
    sentiment: str
    aggressiveness: int


def test_plain_json():
    assert parse_reply('{"sentiment": "sad", "aggressiveness": 2}') == {"sentiment": "sad", "aggressiveness": 2}


def test_fenced_json():
    raw = 'Here you go:\n```json\n{"sentiment": "happy"}\n```'
    assert parse_reply(raw) == {"sentiment": "happy"}


def test_think_block_and_preamble():
    raw = '<think>the user is "angry" {maybe}</think>\nAnswer: {"sentiment": "sad"} hope this helps'
    assert parse_reply(raw) == {"sentiment": "sad"}


def test_decoded_objects_pass_through():
    assert parse_reply({"a": 1}) == {"a": 1}
    assert parse_reply(b'{"a": 1}') == {"a": 1}
    assert parse_reply(_Reply(sentiment="neutral", aggressiveness=1)) == {"sentiment": "neutral", "aggressiveness": 1}


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "[1, 2]", '"just a string"', "<think>{}</think>", None, 42])
def test_unparseable_replies(raw):
    with pytest.raises(MalformedReplyError) as info:
        parse_reply(raw)
    assert info.value.raw == raw


def test_reply_text():
    assert reply_text(None) == ""
    assert reply_text("x") == "x"
    assert reply_text({"a": "é"}) == '{"a": "é"}'
    assert reply_text(_Reply(sentiment="sad", aggressiveness=3)) == '{"sentiment":"sad","aggressiveness":3}'
