from typing import Optional

import httpx

from llama_desk.entities.completion_request import CompletionRequest
from llama_desk.frameworks_drivers.base_llm_service import BaseLLMService, StreamCall, to_chat_messages

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAILLMService(BaseLLMService):
    """OpenAI chat completions. Image parts travel in the same content array as text."""

    name = "openai"

    def __init__(self, api_key: str, base_url: str, timeout: float = 300.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key
        self.base_url = base_url

    def build_call(self, request: CompletionRequest) -> StreamCall:
        return StreamCall(
            url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            body={
                "model": request.model_id or DEFAULT_MODEL,
                "messages": to_chat_messages(request.messages),
                "stream": True,
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
        )

    def extract_token(self, event: dict) -> str:
        choices = event.get("choices") or [{}]
        return (choices[0].get("delta") or {}).get("content") or ""
