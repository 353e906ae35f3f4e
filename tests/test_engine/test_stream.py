"""Tests for the provider event stream decoder."""

import asyncio

import pytest
from conftest import ChunkStream, complete_event, session_event, split_bytes, sse

from autopilot.engine.stream import StreamDecoder, deadline_in, decode_event_stream
from autopilot.schemas.run import STATUS_UNKNOWN, StreamEventKind


def _decode_all(data: bytes, chunk_size: int) -> list:
    decoder = StreamDecoder()
    events = []
    for chunk in split_bytes(data, chunk_size):
        events.extend(decoder.feed(chunk))
    events.extend(decoder.flush())
    return events


class TestStreamDecoder:
    """Tests for incremental line decoding."""

    def test_parses_known_event_types(self):
        """Should map provider types onto event kinds."""
        data = sse(
            session_event("https://replay.test/abc"),
            {"type": "PROGRESS", "purpose": "Opening page"},
            {"type": "ERROR", "message": "blocked"},
            complete_event({"data": [1]}),
        )

        events = _decode_all(data, len(data))

        assert [e.kind for e in events] == [
            StreamEventKind.SESSION_URL,
            StreamEventKind.UNRECOGNIZED,
            StreamEventKind.ERROR,
            StreamEventKind.COMPLETE,
        ]
        assert events[0].session_url == "https://replay.test/abc"
        assert events[2].message == "blocked"
        assert events[3].result_payload == {"data": [1]}

    def test_complete_status_defaults_to_completed(self):
        """A COMPLETE event without a status counts as COMPLETED."""
        events = _decode_all(sse({"type": "COMPLETE", "resultJson": []}), 1024)

        assert events[0].status == "COMPLETED"

    def test_one_byte_chunks_match_single_chunk(self):
        """Chunk boundaries must not change the decoded events."""
        data = sse(
            session_event(),
            {"type": "PROGRESS", "purpose": "Café résumé ✓"},
            complete_event({"ads": [{"page_name": "Zoë's Plumbing 🚰"}]}),
        )

        whole = _decode_all(data, len(data))
        tiny = _decode_all(data, 1)

        assert [e.model_dump() for e in tiny] == [e.model_dump() for e in whole]
        assert tiny[-1].result_payload["ads"][0]["page_name"] == "Zoë's Plumbing 🚰"

    def test_multibyte_character_split_across_chunks(self):
        """A UTF-8 sequence split between chunks is reassembled."""
        data = sse(complete_event({"items": ["naïve"]}))
        split_at = data.index("ï".encode()) + 1

        decoder = StreamDecoder()
        events = decoder.feed(data[:split_at]) + decoder.feed(data[split_at:])

        assert events[0].result_payload == {"items": ["naïve"]}

    def test_ignores_lines_without_prefix(self):
        """Comments, blank lines and other fields are skipped."""
        data = b": keep-alive\n\nevent: message\nid: 3\n" + sse(complete_event([]))

        events = _decode_all(data, 7)

        assert len(events) == 1
        assert events[0].kind == StreamEventKind.COMPLETE

    def test_malformed_line_is_skipped(self):
        """Invalid JSON on one line does not affect later lines."""
        data = sse("{not json", complete_event({"items": [1, 2]}))

        events = _decode_all(data, 5)

        assert len(events) == 1
        assert events[0].result_payload == {"items": [1, 2]}

    def test_crlf_line_endings(self):
        """Trailing carriage returns are stripped."""
        data = b'data: {"type": "COMPLETE", "resultJson": [1]}\r\n\r\n'

        events = _decode_all(data, 3)

        assert events[0].result_payload == [1]

    def test_unterminated_final_line_parsed_on_flush(self):
        """The last line without a newline is parsed when the stream ends."""
        decoder = StreamDecoder()

        assert decoder.feed(b'data: {"type": "COMPLETE", "resultJson": []}') == []
        events = decoder.flush()

        assert len(events) == 1
        assert events[0].kind == StreamEventKind.COMPLETE

    def test_non_object_payload_is_unrecognized(self):
        """A JSON array or scalar on a data line is not an error."""
        events = _decode_all(b"data: [1, 2]\ndata: 7\n", 1024)

        assert [e.kind for e in events] == [StreamEventKind.UNRECOGNIZED] * 2


class TestDecodeEventStream:
    """Tests for reading a whole stream into a DecodeResult."""

    async def test_collects_session_and_result(self):
        """Should capture the session reference and the final payload."""
        stream = ChunkStream([sse(session_event("https://replay.test/1"), complete_event([1]))])

        result = await decode_event_stream(stream)

        assert result.session_reference == "https://replay.test/1"
        assert result.terminal_status == "COMPLETED"
        assert result.result_payload == [1]
        assert result.timed_out is False

    async def test_last_session_url_wins(self):
        """Later STREAMING_URL events replace earlier ones."""
        stream = ChunkStream(
            [sse(session_event("https://replay.test/a"), session_event("https://replay.test/b"))]
        )

        result = await decode_event_stream(stream)

        assert result.session_reference == "https://replay.test/b"

    async def test_stops_reading_after_complete(self):
        """Nothing after the terminal event is consumed, and the read is closed."""
        stream = ChunkStream(
            [
                sse(complete_event({"items": ["first"]})),
                sse(complete_event({"items": ["second"]})),
            ]
        )

        result = await decode_event_stream(stream)

        assert result.result_payload == {"items": ["first"]}
        assert stream.consumed == 1
        assert stream.closed == 1

    async def test_end_without_complete_is_unknown(self):
        """A stream that ends early yields UNKNOWN, never raises."""
        stream = ChunkStream([sse(session_event())])

        result = await decode_event_stream(stream)

        assert result.terminal_status == STATUS_UNKNOWN
        assert result.session_reference == "https://replay.test/session/1"
        assert result.result_payload is None

    async def test_error_event_does_not_end_read(self):
        """A recovered step error is followed by COMPLETE, which decides the outcome."""
        stream = ChunkStream(
            [sse({"type": "ERROR", "message": "step retry"}, complete_event({"data": [1]}))]
        )

        result = await decode_event_stream(stream)

        assert result.terminal_status == "COMPLETED"
        assert result.result_payload == {"data": [1]}
        assert result.events_seen == 2

    async def test_error_without_complete_keeps_message(self):
        """An ERROR and then end of stream yields UNKNOWN with the provider message."""
        stream = ChunkStream([sse(session_event(), {"type": "ERROR", "message": "captcha"})])

        result = await decode_event_stream(stream)

        assert result.terminal_status == STATUS_UNKNOWN
        assert result.error_message == "captcha"
        assert result.session_reference == "https://replay.test/session/1"

    async def test_deadline_cancels_read(self):
        """Deadline expiry returns partial state and closes the source."""
        stream = ChunkStream([sse(session_event("https://replay.test/slow"))], hang_after=True)
        closed = []

        async def aclose():
            closed.append(True)

        result = await decode_event_stream(stream, aclose=aclose, deadline=deadline_in(0.05))

        assert result.timed_out is True
        assert result.terminal_status == STATUS_UNKNOWN
        assert result.session_reference == "https://replay.test/slow"
        assert stream.closed == 1
        assert closed == [True]

    async def test_transport_error_returns_partial_state(self):
        """A broken read is reported as UNKNOWN with what was seen so far."""

        class BrokenStream(ChunkStream):
            async def __anext__(self):
                if self.consumed == 0:
                    self.consumed += 1
                    return sse(session_event("https://replay.test/broken"))
                raise ConnectionResetError("peer went away")

        stream = BrokenStream([])

        result = await decode_event_stream(stream)

        assert result.terminal_status == STATUS_UNKNOWN
        assert result.session_reference == "https://replay.test/broken"
        assert stream.closed == 1

    async def test_failing_aclose_is_ignored(self):
        """Errors while releasing the connection do not escape."""

        async def aclose():
            raise RuntimeError("already closed")

        result = await decode_event_stream(ChunkStream([sse(complete_event([]))]), aclose=aclose)

        assert result.terminal_status == "COMPLETED"

    async def test_outer_cancellation_propagates(self):
        """Cancelling the caller is not swallowed as a stream error."""
        stream = ChunkStream([], hang_after=True)
        task = asyncio.create_task(decode_event_stream(stream))
        await asyncio.sleep(0.01)

        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert stream.closed == 1
