"""
Incremental decoder for the automation provider's event stream.

The provider answers with a line-oriented, prefix-tagged protocol:

    data: {"type": "STREAMING_URL", "streamingUrl": "https://..."}
    data: {"type": "PROGRESS", "purpose": "Opening page"}
    data: {"type": "COMPLETE", "status": "COMPLETED", "resultJson": {...}}

Bytes arrive in arbitrarily sized chunks that are not aligned to lines or to
UTF-8 character boundaries. Lines without the prefix and lines whose payload
is not valid JSON are dropped without aborting the read.
"""

import asyncio
import codecs
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from autopilot.core.logging import get_logger
from autopilot.schemas.run import DecodeResult, StreamEvent, StreamEventKind

logger = get_logger(__name__)

DATA_PREFIX = "data: "
DEFAULT_COMPLETE_STATUS = "COMPLETED"

# Provider payload "type" -> decoded event kind
_EVENT_TYPES = {
    "STREAMING_URL": StreamEventKind.SESSION_URL,
    "COMPLETE": StreamEventKind.COMPLETE,
    "ERROR": StreamEventKind.ERROR,
}


class StreamDecoder:
    """Turns raw byte chunks into StreamEvents.

    Keeps a single text buffer. Incomplete multi-byte sequences at the end of
    a chunk stay inside the incremental UTF-8 decoder until the next chunk
    completes them, and the last (possibly partial) line stays in the buffer.
    """

    def __init__(self, prefix: str = DATA_PREFIX) -> None:
        self.prefix = prefix
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Decode one chunk and return the events completed by it."""
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> list[StreamEvent]:
        """Decode whatever is left once the byte stream has ended."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._parse_lines(tail.split("\n"))

    def _parse_lines(self, lines: list[str]) -> list[StreamEvent]:
        events = []
        for line in lines:
            event = self.parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def parse_line(self, line: str) -> StreamEvent | None:
        """Parse one complete line; None for lines that carry no payload."""
        line = line.rstrip("\r")
        if not line.startswith(self.prefix):
            return None

        try:
            payload = json.loads(line[len(self.prefix) :])
        except ValueError:
            logger.bind(line=line[:200]).debug("stream_line_malformed")
            return None

        if not isinstance(payload, dict):
            return StreamEvent(kind=StreamEventKind.UNRECOGNIZED)

        kind = _EVENT_TYPES.get(str(payload.get("type", "")).upper(), StreamEventKind.UNRECOGNIZED)

        if kind == StreamEventKind.SESSION_URL:
            return StreamEvent(
                kind=kind,
                session_url=payload.get("streamingUrl") or payload.get("url"),
                raw=payload,
            )
        if kind == StreamEventKind.COMPLETE:
            return StreamEvent(
                kind=kind,
                status=payload.get("status") or DEFAULT_COMPLETE_STATUS,
                result_payload=payload.get("resultJson"),
                raw=payload,
            )
        if kind == StreamEventKind.ERROR:
            return StreamEvent(
                kind=kind,
                message=(
                    payload.get("message") or payload.get("error") or "Provider reported an error"
                ),
                raw=payload,
            )
        return StreamEvent(kind=kind, raw=payload)


def _apply_event(result: DecodeResult, event: StreamEvent) -> bool:
    """Fold one event into the result. Returns True when the event is terminal."""
    result.events_seen += 1

    if event.kind == StreamEventKind.SESSION_URL:
        if event.session_url:
            result.session_reference = event.session_url
        return False

    if event.kind == StreamEventKind.COMPLETE:
        result.terminal_status = event.status or DEFAULT_COMPLETE_STATUS
        result.result_payload = event.result_payload
        return True

    # Not terminal: only COMPLETE ends the stream. The message is kept for an UNKNOWN outcome.
    if event.kind == StreamEventKind.ERROR:
        result.error_message = event.message
        return False

    return False


async def _cancel_read(
    chunks: AsyncIterator[bytes],
    aclose: Callable[[], Awaitable[None]] | None,
) -> None:
    """Release the underlying read. Safe to call after the read already ended."""
    closers: list[Callable[[], Awaitable[Any]]] = []
    chunks_aclose = getattr(chunks, "aclose", None)
    if chunks_aclose is not None:
        closers.append(chunks_aclose)
    if aclose is not None:
        closers.append(aclose)

    for close in closers:
        try:
            await close()
        except Exception as e:
            logger.bind(error=str(e)).debug("stream_cancel_failed")


def deadline_in(seconds: float) -> float:
    """Absolute event-loop deadline `seconds` from now."""
    return asyncio.get_running_loop().time() + seconds


async def decode_event_stream(
    chunks: AsyncIterator[bytes],
    *,
    aclose: Callable[[], Awaitable[None]] | None = None,
    deadline: float | None = None,
) -> DecodeResult:
    """
    Read a provider event stream until a terminal event, the end of the
    stream, an error, or the deadline.

    Never raises for stream-level problems: a broken or timed-out read
    returns the partial state (notably a captured session reference) with
    terminal_status "UNKNOWN".

    Args:
        chunks: Async iterator of raw byte chunks
        aclose: Optional callable releasing the underlying connection
        deadline: Absolute event-loop time (see deadline_in); None for no limit

    Returns:
        DecodeResult with session reference, payload and terminal status
    """
    decoder = StreamDecoder()
    result = DecodeResult()

    try:
        async with asyncio.timeout_at(deadline):
            async for chunk in chunks:
                for event in decoder.feed(chunk):
                    if _apply_event(result, event):
                        return result

            for event in decoder.flush():
                if _apply_event(result, event):
                    return result
    except TimeoutError:
        result.timed_out = True
        logger.bind(
            session_reference=result.session_reference,
            events_seen=result.events_seen,
        ).warning("stream_decode_timeout")
    except Exception as e:
        logger.bind(error=str(e), events_seen=result.events_seen).warning(
            "stream_decode_interrupted"
        )
    finally:
        await _cancel_read(chunks, aclose)

    return result
