"""Wire-level helpers shared by the streaming and download tests."""
import json
from typing import Callable

import httpx


def sse_body(*events, done: bool = True) -> bytes:
    """Encode dicts (or raw strings) as an event-stream body."""
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def openai_chunk(text: str) -> dict:
    return {"choices": [{"delta": {"content": text}}]}


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)
