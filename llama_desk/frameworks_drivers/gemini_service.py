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
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


def format_parts(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Gemini parts: text, or inline base64 image data. Remote image URLs are not supported."""
    if isinstance(content, str):
        return [{"text": content}]

    parts = []
    for part in content:
        if part.get("type") == "text":
            parts.append({"text": part.get("text", "")})
        elif part.get("type") == "image_url":
            url = (part.get("image_url") or {}).get("url", "")
            inline = split_data_url(url)
            if inline:
                mime_type, data = inline
                parts.append({"inlineData": {"mimeType": mime_type, "data": data}})
            else:
                logger.debug("Dropping non-inline image part for Gemini")
    return parts


class GeminiLLMService(BaseLLMService):
    """Gemini streamGenerateContent over SSE (``alt=sse``), authenticated with a query-string key."""

    name = "google"

    def __init__(self, api_key: str, base_url: str, timeout: float = 300.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key
        self.base_url = base_url

    def build_call(self, request: CompletionRequest) -> StreamCall:
        messages = to_chat_messages(request.messages)
        body: dict[str, Any] = {
            "contents": [
                {"role": "model" if m["role"] == "assistant" else "user", "parts": format_parts(m["content"])}
                for m in messages if m["role"] != "system"
            ],
            "generationConfig": {"temperature": request.temperature, "maxOutputTokens": request.max_tokens},
        }
        system = system_instruction(messages)
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        model = request.model_id or DEFAULT_MODEL
        return StreamCall(
            url=f"{self.base_url}/{model}:streamGenerateContent",
            params={"alt": "sse", "key": self.api_key},
            body=body,
        )

    def extract_token(self, event: dict) -> str:
        candidates = event.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
