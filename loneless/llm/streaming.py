"""
Streaming Decoder
=================

Incremental decoder for server-sent-event style chat completion streams.

Bytes arrive in arbitrary chunks; the decoder keeps at most one partial
line buffered, splits complete lines on ``\\n`` and turns every
``data: {...}`` line into a text delta. ``data: [DONE]`` terminates the
stream. Lines whose payload is not valid JSON are skipped: keep-alive and
comment lines are common in event streams.

Usage:
    decoder = StreamDecoder()
    for delta in decoder.feed(b'data: {"choices":[{"delta":{"content":"Hi"}}]}\\n'):
        print(delta)

    text = await decode_stream(response.iter_chunks(), on_delta=print)
"""

import json
from enum import Enum, auto
from typing import Any, AsyncIterable, Callable, Optional

from loneless.utils.logger import get_logger

logger = get_logger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"

DeltaCallback = Callable[[str], None]


class DecoderState(Enum):
    """States of the line reassembly state machine."""

    ACCUMULATING = auto()
    LINE_READY = auto()
    IDLE = auto()
    TERMINATED = auto()


def extract_openai_delta(event: Any) -> Optional[str]:
    """Return ``choices[0].delta.content`` from a chat completion chunk."""
    if not isinstance(event, dict):
        return None
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class StreamDecoder:
    """
    Line reassembly state machine over an incoming byte stream.

    ``feed`` may be called with chunks split anywhere, including inside a
    multi-byte UTF-8 character: lines are only decoded once their newline
    has arrived.
    """

    def __init__(
        self,
        extract_delta: Callable[[Any], Optional[str]] = extract_openai_delta,
    ) -> None:
        self._extract_delta = extract_delta
        self._buffer = bytearray()
        self.state = DecoderState.ACCUMULATING
        self.skipped_lines = 0

    @property
    def terminated(self) -> bool:
        return self.state is DecoderState.TERMINATED

    @property
    def pending_bytes(self) -> int:
        """Size of the buffered, not yet newline-terminated, partial line."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """
        Consume a chunk and return the deltas completed by it, in order.

        Input received after termination is ignored.
        """
        if self.terminated:
            return []

        self._buffer.extend(chunk)
        deltas: list[str] = []
        while not self.terminated:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                self.state = DecoderState.ACCUMULATING
                break
            raw_line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            self.state = DecoderState.LINE_READY
            delta = self._classify_line(raw_line)
            if delta:
                deltas.append(delta)

        if self.terminated:
            self._buffer.clear()
        elif not self._buffer:
            self.state = DecoderState.IDLE
        return deltas

    def _classify_line(self, raw_line: bytes) -> Optional[str]:
        """Turn one complete line into a delta, a terminator or nothing."""
        try:
            line = raw_line.decode("utf-8").strip()
        except UnicodeDecodeError:
            self.skipped_lines += 1
            return None

        if not line or not line.startswith(SSE_DATA_PREFIX):
            return None

        payload = line[len(SSE_DATA_PREFIX):].strip()
        if payload == SSE_DONE_SENTINEL:
            self.state = DecoderState.TERMINATED
            return None

        try:
            event = json.loads(payload)
        except ValueError:
            self.skipped_lines += 1
            logger.debug("Skipping malformed stream line", line=line[:200])
            return None

        return self._extract_delta(event) or None

    def close(self) -> None:
        """Discard any partial line left at the end of the call."""
        if self._buffer:
            logger.debug("Discarding unterminated stream tail", bytes=len(self._buffer))
        self._buffer.clear()
        if not self.terminated:
            self.state = DecoderState.IDLE


async def decode_stream(
    chunks: AsyncIterable[bytes],
    on_delta: DeltaCallback,
    decoder: Optional[StreamDecoder] = None,
) -> str:
    """
    Drive a decoder over an async byte stream.

    Calls ``on_delta`` for every delta in arrival order and stops at the
    ``[DONE]`` sentinel or when the stream ends, whichever comes first.

    Returns:
        The concatenation of all emitted deltas.
    """
    decoder = decoder or StreamDecoder()
    received: list[str] = []
    try:
        async for chunk in chunks:
            for delta in decoder.feed(chunk):
                received.append(delta)
                on_delta(delta)
            if decoder.terminated:
                break
    finally:
        decoder.close()
    return "".join(received)
