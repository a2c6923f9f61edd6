"""Tests for the incremental JSON array parser."""

import json

import pytest

from fleet_build_client.build.stream import PENDING, ArrayStreamParser
from fleet_build_client.exceptions import BuildStreamError

SAMPLE = (
    '[{"message":"Step 1/3 : FROM alpine"},\n'
    '{"message":"café \\"quoted\\" [x] {y}","replace":true},\n'
    '{"resource":"cursor","value":"erase"},\n'
    '[1, 2.5e3, -7],"text",true,null,123,\n'
    '{"isSuccess":true,"nested":{"a":[{"b":"]"}]}}]'
)


def feed(parser, chunks, eof=True):
    values = []
    for chunk in chunks:
        parser.extend(chunk)
        values.extend(parser.values())
    if eof:
        parser.feed_eof()
        values.extend(parser.values())
    return values


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def test_split_object_is_buffered_until_complete():
    """An object split across chunks comes out once it closes."""
    parser = ArrayStreamParser()

    parser.extend(b'[{"a":1')
    assert parser.try_next() is PENDING

    parser.extend(b'},{"b":2}]')
    assert parser.try_next() == {"a": 1}
    assert parser.try_next() == {"b": 2}
    assert parser.try_next() is PENDING


@pytest.mark.parametrize("size", [1, 2, 3, 7, 16, 64, 4096])
def test_chunk_invariance(size):
    """Any chunking yields the same values as a whole decode."""
    data = SAMPLE.encode("utf-8")
    expected = json.loads(SAMPLE)

    assert feed(ArrayStreamParser(), split_every(data, size)) == expected


def test_multibyte_character_split_across_chunks():
    """UTF-8 sequences split between chunks are reassembled."""
    data = '[{"message":"✓ done"}]'.encode("utf-8")
    cut = data.index(b"\xe2") + 1

    values = feed(ArrayStreamParser(), [data[:cut], data[cut:]])

    assert values == [{"message": "✓ done"}]


def test_closing_bracket_is_optional():
    """Streams may stop without closing the array."""
    values = feed(ArrayStreamParser(), [b'[{"a":1},\n{"b":2}\n'])

    assert values == [{"a": 1}, {"b": 2}]


def test_trailing_number_waits_for_delimiter():
    """A number touching the buffer end may still grow."""
    parser = ArrayStreamParser()
    parser.extend(b"[12")
    assert parser.try_next() is PENDING

    parser.extend(b"3,4")
    assert parser.try_next() == 123
    assert parser.try_next() is PENDING

    parser.feed_eof()
    assert parser.try_next() == 4


def test_null_is_a_value_not_pending():
    """JSON null is distinguishable from "not yet available"."""
    parser = ArrayStreamParser()
    parser.extend(b"[null,")

    assert parser.try_next() is None
    assert parser.try_next() is PENDING


def test_partial_value_keeps_buffer():
    """No bytes are dropped while a value is incomplete."""
    parser = ArrayStreamParser()
    parser.extend(b'[{"message":"hel')

    assert parser.try_next() is PENDING
    assert parser.buffered == '{"message":"hel'


def test_invalid_utf8_raises():
    """Undecodable bytes are a stream error."""
    parser = ArrayStreamParser()

    with pytest.raises(BuildStreamError, match="UTF-8"):
        parser.extend(b'[{"message":"\xff\xfe"}]')


def test_malformed_value_raises_with_fragment():
    """Malformed JSON is reported with the offending text."""
    parser = ArrayStreamParser()
    parser.extend(b'[{"message":}]')

    with pytest.raises(BuildStreamError) as exc_info:
        parser.try_next()

    assert exc_info.value.fragment == '{"message":}'


def test_truncated_value_at_eof_raises():
    """Input ending inside a value is an error once EOF is known."""
    parser = ArrayStreamParser()
    parser.extend(b'[{"message":"x"},{"mess')
    assert parser.try_next() == {"message": "x"}

    parser.feed_eof()
    with pytest.raises(BuildStreamError, match="ended inside"):
        parser.try_next()


def test_content_after_closing_bracket_raises():
    """Only whitespace may follow the closing bracket."""
    parser = ArrayStreamParser()
    parser.extend(b'[{"a":1}] {"b":2}')

    assert parser.try_next() == {"a": 1}
    with pytest.raises(BuildStreamError, match="after end of array"):
        parser.try_next()


def test_extend_after_eof_raises():
    """No data may arrive once EOF was fed."""
    parser = ArrayStreamParser()
    parser.feed_eof()

    with pytest.raises(BuildStreamError):
        parser.extend(b"[]")


def test_scan_resumes_inside_escape():
    """String and escape state carry over a chunk boundary."""
    parser = ArrayStreamParser()
    parser.extend(b'[{"message":"say \\')
    assert parser.try_next() is PENDING

    parser.extend(b'"hi\\"","x":"]"}')
    assert parser.try_next() == {"message": 'say "hi"', "x": "]"}


def test_large_value_in_small_chunks():
    """A value spread over many chunks is decoded once it completes."""
    message = "x" * 50_000
    data = json.dumps([{"message": message}, 7]).encode("utf-8")
    parser = ArrayStreamParser()

    values = feed(parser, split_every(data, 3))

    assert values == [{"message": message}, 7]
    assert parser.buffered == ""
