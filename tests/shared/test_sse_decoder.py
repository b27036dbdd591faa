import json
from unittest.mock import MagicMock

import pytest

from llama_desk.shared.cancellation import CancellationToken
from llama_desk.shared.errors import CompletionCancelled
from llama_desk.shared.sse_decoder import EventStreamDecoder, LineBuffer, data_payload


def openai_token(event: dict) -> str:
    return (event.get("choices") or [{}])[0].get("delta", {}).get("content") or ""


async def chunks_of(*parts: str):
    for part in parts:
        yield part


class TestLineBuffer:
    def test_keeps_partial_line_until_completed(self):
        buffer = LineBuffer()

        assert buffer.feed("data: {\"a\"") == []
        assert buffer.feed(": 1}\ndata: x") == ['data: {"a": 1}']
        assert buffer.flush() == ["data: x"]
        assert buffer.flush() == []


class TestDataPayload:
    def test_only_data_lines_have_payload(self):
        assert data_payload("  data: {}  ") == "{}"
        assert data_payload("event: content_block_delta") is None
        assert data_payload(": keep-alive") is None
        assert data_payload("") is None


class TestEventStreamDecoder:
    @pytest.mark.asyncio
    async def test_local_hi_scenario(self):
        decoder = EventStreamDecoder(openai_token)
        on_token = MagicMock()
        body = 'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'

        result = await decoder.decode(chunks_of(body), on_token)

        assert result == "Hi"
        on_token.assert_called_once_with("Hi")

    @pytest.mark.asyncio
    async def test_malformed_lines_are_skipped_in_order(self):
        decoder = EventStreamDecoder(openai_token)
        tokens = []
        lines = [
            f"data: {json.dumps({'choices': [{'delta': {'content': 'A'}}]})}",
            "data: {not json",
            f"data: {json.dumps({'choices': [{'delta': {'content': 'B'}}]})}",
            "data: [1, 2]",
            "data: ",
            f"data: {json.dumps({'choices': [{'delta': {'content': 'C'}}]})}",
        ]

        result = await decoder.decode(chunks_of("\n".join(lines) + "\n"), tokens.append)

        assert result == "ABC"
        assert tokens == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_lines_split_across_chunks(self):
        decoder = EventStreamDecoder(openai_token)
        body = 'data: {"choices":[{"delta":{"content":"Hello"}}]}\ndata: {"choices":[{"delta":{"content":" world"}}]}\n'
        parts = [body[i:i + 7] for i in range(0, len(body), 7)]

        result = await decoder.decode(chunks_of(*parts), MagicMock())

        assert result == "Hello world"

    @pytest.mark.asyncio
    async def test_final_line_without_newline_is_decoded(self):
        decoder = EventStreamDecoder(openai_token)

        result = await decoder.decode(chunks_of('data: {"choices":[{"delta":{"content":"end"}}]}'), MagicMock())

        assert result == "end"

    @pytest.mark.asyncio
    async def test_event_lines_skipped_and_terminal_event_stops(self):
        def anthropic_token(event):
            if event.get("type") != "content_block_delta":
                return ""
            return event["delta"].get("text", "")

        decoder = EventStreamDecoder(anthropic_token, lambda event: event.get("type") == "message_stop")
        body = (
            "event: message_start\n"
            'data: {"type": "message_start"}\n\n'
            "event: content_block_delta\n"
            'data: {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Yo"}}\n\n'
            "event: message_stop\n"
            'data: {"type": "message_stop"}\n\n'
            'data: {"type": "content_block_delta", "delta": {"text": "ignored"}}\n\n'
        )

        result = await decoder.decode(chunks_of(body), MagicMock())

        assert result == "Yo"

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_next_delivery(self):
        token = CancellationToken()
        decoder = EventStreamDecoder(openai_token)
        delivered = []

        def on_token(text):
            delivered.append(text)
            if len(delivered) == 2:
                token.cancel()

        body = "".join(f'data: {{"choices":[{{"delta":{{"content":"{c}"}}}}]}}\n' for c in "abcd")

        with pytest.raises(CompletionCancelled):
            await decoder.decode(chunks_of(body), on_token, token)
        assert delivered == ["a", "b"]
