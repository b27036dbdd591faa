import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from llama_desk.entities.completion_request import CompletionRequest
from llama_desk.entities.message import Message
from llama_desk.shared.error_utils import ErrorUtils
from llama_desk.shared.errors import CompletionCancelled, ProviderError, TransportError
from llama_desk.shared.logger import Logger
from llama_desk.shared.sse_decoder import EventStreamDecoder

logger = Logger.get(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)


@dataclass
class StreamCall:
    """Everything needed to open one streaming request."""

    url: str
    body: dict
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)


def to_chat_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """
    Convert stored messages into the generic chat form used across the app:
    plain string content, or a parts list with ``text`` and ``image_url`` entries
    when the message carries images.
    """
    result = []
    for message in messages:
        if message.images:
            parts: list[dict[str, Any]] = [{"type": "text", "text": message.content}]
            parts.extend({"type": "image_url", "image_url": {"url": url}} for url in message.images)
            result.append({"role": message.role, "content": parts})
        else:
            result.append({"role": message.role, "content": message.content})
    return result


def split_data_url(url: str) -> Optional[tuple[str, str]]:
    """Return (media_type, base64_data) for an image data URL, None for anything else."""
    match = DATA_URL_PATTERN.match(url)
    if not match:
        return None
    return match.group(1), match.group(2)


def system_instruction(messages: list[dict[str, Any]]) -> str:
    return "\n\n".join(
        m["content"] for m in messages if m["role"] == "system" and isinstance(m["content"], str) and m["content"]
    )


class BaseLLMService:
    """
    Shared streaming transport for every completion backend.

    Subclasses describe the wire format (``build_call``) and how to read a
    token out of one decoded event (``extract_token``/``is_terminal``); this
    class owns the connection, error-body handling and cancellation.
    """

    name = "backend"

    def __init__(self, timeout: float = 300.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    def build_call(self, request: CompletionRequest) -> StreamCall:
        raise NotImplementedError

    def extract_token(self, event: dict) -> str:
        raise NotImplementedError

    def is_terminal(self, event: dict) -> bool:
        return False

    async def stream(self, request: CompletionRequest, on_token: Callable[[str], None]) -> str:
        token = request.cancellation_token
        token.raise_if_cancelled(CompletionCancelled)
        call = self.build_call(request)
        return await token.run(self._stream(call, request, on_token), CompletionCancelled)

    async def _stream(self, call: StreamCall, request: CompletionRequest, on_token: Callable[[str], None]) -> str:
        decoder = EventStreamDecoder(self.extract_token, self.is_terminal)
        timeout = httpx.Timeout(read=self.timeout, connect=10.0, write=10.0, pool=10.0)
        logger.info(f"Streaming completion from {self.name} ({len(request.messages)} messages)")
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                async with client.stream(
                    "POST", call.url, json=call.body, headers=call.headers, params=call.params or None,
                ) as response:
                    if response.status_code >= 400:
                        body = await response.aread()
                        message = self._error_message(response.status_code, body)
                        logger.error(f"{self.name} API error ({response.status_code}): {message}")
                        raise ProviderError(message, response.status_code)
                    return await decoder.decode(response.aiter_text(), on_token, request.cancellation_token)
        except httpx.HTTPError as e:
            message = ErrorUtils.scrub_secrets(f"{self.name} request failed: {e}")
            logger.error(message)
            raise TransportError(message) from e

    @staticmethod
    def _error_message(status_code: int, body: bytes) -> str:
        text = body.decode("utf-8", errors="replace")
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        # Gemini wraps streaming errors in a list.
        if isinstance(parsed, list) and parsed:
            parsed = parsed[0]
        if isinstance(parsed, dict):
            error = parsed.get("error")
            if isinstance(error, dict) and error.get("message"):
                return ErrorUtils.scrub_secrets(str(error["message"]))
            if isinstance(error, str) and error:
                return ErrorUtils.scrub_secrets(error)
        return ErrorUtils.scrub_secrets(f"API error {status_code}: {text[:200]}")
