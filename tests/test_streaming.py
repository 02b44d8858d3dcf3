"""
Tests for the Streaming Decoder
===============================

Tests for:
- Delta extraction from complete and split lines
- [DONE] termination and EOF without sentinel
- Skipping of malformed, blank and non-data lines
- decode_stream over an async chunk source
"""

import pytest

from loneless.llm.streaming import DecoderState, StreamDecoder, decode_stream, extract_openai_delta
from tests.conftest import SSE_DONE, sse_event


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


class TestExtractDelta:
    def test_content(self):
        assert extract_openai_delta({"choices": [{"delta": {"content": "Hi"}}]}) == "Hi"

    def test_role_only_chunk(self):
        assert extract_openai_delta({"choices": [{"delta": {"role": "assistant"}}]}) is None

    def test_unexpected_shapes(self):
        assert extract_openai_delta([]) is None
        assert extract_openai_delta({"choices": []}) is None
        assert extract_openai_delta({"choices": ["x"]}) is None
        assert extract_openai_delta({"choices": [{"delta": {"content": 5}}]}) is None


class TestStreamDecoder:
    @pytest.mark.parametrize("count", [1, 3, 10])
    def test_k_deltas_then_done(self, count):
        decoder = StreamDecoder()
        stream = b"".join(sse_event(f"part{i} ") for i in range(count)) + SSE_DONE

        deltas = decoder.feed(stream)

        assert deltas == [f"part{i} " for i in range(count)]
        assert decoder.terminated
        assert decoder.state is DecoderState.TERMINATED

    def test_malformed_line_skipped(self):
        decoder = StreamDecoder()

        deltas = decoder.feed(sse_event("a") + b"data: {not json}\n" + sse_event("b"))

        assert deltas == ["a", "b"]
        assert decoder.skipped_lines == 1
        assert not decoder.terminated

    def test_blank_and_comment_lines_ignored(self):
        decoder = StreamDecoder()

        deltas = decoder.feed(b"\n: keep-alive\n\r\nevent: message\n" + sse_event("x"))

        assert deltas == ["x"]
        assert decoder.skipped_lines == 0

    def test_line_split_across_chunks(self):
        decoder = StreamDecoder()
        line = sse_event("hello")

        assert decoder.feed(line[:10]) == []
        assert decoder.state is DecoderState.ACCUMULATING
        assert decoder.pending_bytes == 10
        assert decoder.feed(line[10:]) == ["hello"]
        assert decoder.state is DecoderState.IDLE
        assert decoder.pending_bytes == 0

    def test_multibyte_character_split(self):
        decoder = StreamDecoder()
        line = sse_event("привет")
        cut = line.index("п".encode("utf-8")) + 1

        assert decoder.feed(line[:cut]) == []
        assert decoder.feed(line[cut:]) == ["привет"]

    def test_crlf_line_endings(self):
        decoder = StreamDecoder()
        line = sse_event("hi").replace(b"\n", b"\r\n")

        assert decoder.feed(line) == ["hi"]

    def test_input_after_done_ignored(self):
        decoder = StreamDecoder()

        assert decoder.feed(SSE_DONE + sse_event("late")) == []
        assert decoder.feed(sse_event("later")) == []
        assert decoder.pending_bytes == 0

    def test_done_without_space(self):
        decoder = StreamDecoder()
        decoder.feed(b"data:[DONE]\n")
        assert decoder.terminated

    def test_close_discards_partial_line(self):
        decoder = StreamDecoder()
        decoder.feed(sse_event("a") + b'data: {"choices"')

        decoder.close()

        assert decoder.pending_bytes == 0
        assert decoder.state is DecoderState.IDLE


class TestDecodeStream:
    @pytest.mark.asyncio
    async def test_callback_order_and_result(self):
        received = []

        text = await decode_stream(
            _chunks(sse_event("Hel"), sse_event("lo"), SSE_DONE),
            received.append,
        )

        assert received == ["Hel", "lo"]
        assert text == "Hello"

    @pytest.mark.asyncio
    async def test_eof_without_sentinel(self):
        received = []

        text = await decode_stream(_chunks(sse_event("a"), sse_event("b")), received.append)

        assert text == "ab"
        assert received == ["a", "b"]

    @pytest.mark.asyncio
    async def test_stops_reading_after_done(self):
        consumed = []

        async def source():
            for part in (sse_event("a"), SSE_DONE, sse_event("never")):
                consumed.append(part)
                yield part

        text = await decode_stream(source(), lambda d: None)

        assert text == "a"
        assert len(consumed) == 2

    @pytest.mark.asyncio
    async def test_unterminated_tail_dropped(self):
        text = await decode_stream(_chunks(sse_event("a"), b'data: {"choices":[{"delta":{"content":"b"}}]}'), lambda d: None)

        assert text == "a"
