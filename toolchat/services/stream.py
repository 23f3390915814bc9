"""Server-sent event relay and incremental decoding.

Upstream frames are newline-delimited lines: ``:`` comments, blank
separators, and ``data: <json>`` records ending with ``data: [DONE]``.
"""

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Any

import httpx

from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


async def relay_stream(response: httpx.Response) -> AsyncIterator[bytes]:
    """Forward the upstream event-stream body, releasing the connection at the end.

    Any transfer compression is undone here, since the downstream response
    does not carry the upstream ``Content-Encoding``.

    The ``finally`` also runs when the consumer abandons the generator, e.g.
    when the downstream client disconnects.
    """
    forwarded = 0
    try:
        async for chunk in response.aiter_bytes():
            forwarded += len(chunk)
            yield chunk
    finally:
        await response.aclose()
        logger.debug(f"Relayed {forwarded} bytes from gateway stream")


def extract_delta(record: dict[str, Any]) -> str | None:
    """Incremental text carried by one completion chunk, if any."""
    choices = record.get("choices") or []
    if not choices:
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) and content else None


@dataclass
class DecoderStats:
    records: int = 0
    malformed: int = 0


class SSEDecoder:
    """Incremental decoder from raw event-stream bytes to text deltas.

    A line is only parsed once its terminating newline has arrived, so a
    record split across network chunks is never mistaken for a malformed one.
    A complete line that fails to parse is malformed; it is logged and
    skipped.
    """

    def __init__(self):
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False
        self.stats = DecoderStats()

    @property
    def awaiting_more(self) -> bool:
        """True while a partial line is buffered."""
        return bool(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """Consume a chunk and return the deltas completed by it, in order."""
        if self.done:
            return []
        self._buffer += self._utf8.decode(chunk)
        return self._drain()

    def close(self) -> list[str]:
        """Flush at end of transport; a trailing unterminated line is processed."""
        if self.done:
            return []
        self._buffer += self._utf8.decode(b"", final=True)
        if self._buffer and not self._buffer.endswith("\n"):
            self._buffer += "\n"
        return self._drain()

    def _drain(self) -> list[str]:
        deltas: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            delta = self._process_line(line.removesuffix("\r"))
            if delta is not None:
                deltas.append(delta)
        if self.done:
            self._buffer = ""
        return deltas

    def _process_line(self, line: str) -> str | None:
        if not line.strip() or line.startswith(":"):
            return None
        if not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX) :].strip()
        if data == DONE_SENTINEL:
            self.done = True
            return None

        try:
            record = json.loads(data)
        except json.JSONDecodeError:
            self.stats.malformed += 1
            logger.warning(f"Skipping malformed event-stream record: {data[:200]}")
            return None

        self.stats.records += 1
        if not isinstance(record, dict):
            return None
        return extract_delta(record)


def decode_text(chunks: Iterable[bytes]) -> str:
    """Decode a complete sequence of chunks into the accumulated text."""
    decoder = SSEDecoder()
    parts: list[str] = []
    for chunk in chunks:
        parts.extend(decoder.feed(chunk))
    parts.extend(decoder.close())
    return "".join(parts)


async def iter_deltas(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield deltas from an async byte source.

    After the end sentinel, remaining bytes are read but ignored so the
    transport finishes on its own.
    """
    decoder = SSEDecoder()
    async for chunk in chunks:
        for delta in decoder.feed(chunk):
            yield delta
    for delta in decoder.close():
        yield delta
