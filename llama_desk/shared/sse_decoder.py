import json
from typing import AsyncIterable, Callable, Optional

from llama_desk.shared.cancellation import CancellationToken
from llama_desk.shared.errors import CompletionCancelled
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

TokenExtractor = Callable[[dict], str]
TerminalCheck = Callable[[dict], bool]


class LineBuffer:
    """Splits an incrementally received body into complete lines, keeping the trailing partial line."""

    def __init__(self):
        self._pending = ""

    def feed(self, chunk: str) -> list[str]:
        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        return lines

    def flush(self) -> list[str]:
        rest, self._pending = self._pending, ""
        return [rest] if rest.strip() else []


def data_payload(line: str) -> Optional[str]:
    """Return the payload of a ``data:`` line, or None for any other line (``event:``, comments, blanks)."""
    trimmed = line.strip()
    if not trimmed.startswith(DATA_PREFIX):
        return None
    return trimmed[len(DATA_PREFIX):]


class EventStreamDecoder:
    """
    Decodes a ``text/event-stream`` completion body into tokens.

    One instance per call. Provider differences are confined to
    ``extract_token`` (event -> text, empty for non-token events) and
    ``is_terminal`` (provider-specific end-of-stream events). Lines that
    are not valid JSON are skipped.
    """

    def __init__(self, extract_token: TokenExtractor, is_terminal: Optional[TerminalCheck] = None):
        self.extract_token = extract_token
        self.is_terminal = is_terminal or (lambda event: False)
        self._parts: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def decode(self, chunks: AsyncIterable[str], on_token: Callable[[str], None],
                     cancellation_token: Optional[CancellationToken] = None) -> str:
        """Consume ``chunks`` until the stream ends or a terminal event arrives; return the accumulated text."""
        buffer = LineBuffer()
        async for chunk in chunks:
            for line in buffer.feed(chunk):
                if self._handle_line(line, on_token, cancellation_token):
                    return self.text
        for line in buffer.flush():
            if self._handle_line(line, on_token, cancellation_token):
                break
        return self.text

    def _handle_line(self, line: str, on_token: Callable[[str], None],
                     cancellation_token: Optional[CancellationToken]) -> bool:
        payload = data_payload(line)
        if payload is None:
            return False
        if payload == DONE_SENTINEL:
            return True

        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed stream line: {payload[:100]}")
            return False
        if not isinstance(event, dict):
            return False

        token = self.extract_token(event)
        if token:
            if cancellation_token is not None:
                cancellation_token.raise_if_cancelled(CompletionCancelled)
            self._parts.append(token)
            on_token(token)
        return self.is_terminal(event)
