from typing import Any, Optional

import httpx

from llama_desk.entities.completion_request import CompletionRequest
from llama_desk.frameworks_drivers.base_llm_service import (
    BaseLLMService,
    StreamCall,
    split_data_url,
    system_instruction,
    to_chat_messages,
)
from llama_desk.shared.errors import ProviderError

DEFAULT_MODEL = "claude-3-5-haiku-20241022"


def format_content(content: str | list[dict[str, Any]]) -> str | list[dict[str, Any]]:
    """Translate generic ``image_url`` parts into Anthropic image source blocks."""
    if isinstance(content, str):
        return content

    parts = []
    for part in content:
        if part.get("type") == "text":
            parts.append({"type": "text", "text": part.get("text", "")})
        elif part.get("type") == "image_url":
            url = (part.get("image_url") or {}).get("url", "")
            inline = split_data_url(url)
            if inline:
                media_type, data = inline
                parts.append({"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}})
            elif url:
                parts.append({"type": "image", "source": {"type": "url", "url": url}})
        else:
            parts.append(part)
    return parts


class AnthropicLLMService(BaseLLMService):
    """
    Anthropic messages API. The system prompt is a top-level field and the
    stream is typed: only ``content_block_delta`` carries text and
    ``message_stop`` ends it.
    """

    name = "anthropic"

    def __init__(self, api_key: str, base_url: str, api_version: str = "2023-06-01",
                 timeout: float = 300.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key
        self.base_url = base_url
        self.api_version = api_version

    def build_call(self, request: CompletionRequest) -> StreamCall:
        messages = to_chat_messages(request.messages)
        body: dict[str, Any] = {
            "model": request.model_id or DEFAULT_MODEL,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [
                {"role": m["role"], "content": format_content(m["content"])}
                for m in messages if m["role"] != "system"
            ],
            "stream": True,
        }
        system = system_instruction(messages)
        if system:
            body["system"] = system
        return StreamCall(
            url=self.base_url,
            headers={"x-api-key": self.api_key, "anthropic-version": self.api_version},
            body=body,
        )

    def extract_token(self, event: dict) -> str:
        event_type = event.get("type")
        if event_type == "error":
            error = event.get("error") or {}
            raise ProviderError(error.get("message") or "Anthropic stream error")
        if event_type != "content_block_delta":
            return ""
        return (event.get("delta") or {}).get("text") or ""

    def is_terminal(self, event: dict) -> bool:
        return event.get("type") == "message_stop"
