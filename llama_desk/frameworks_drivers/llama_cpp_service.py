from typing import Callable, Optional

import httpx

from llama_desk.entities.completion_request import CompletionRequest
from llama_desk.frameworks_drivers.base_llm_service import BaseLLMService, StreamCall, to_chat_messages
from llama_desk.frameworks_drivers.llama_server_supervisor import LlamaServerSupervisor
from llama_desk.shared.errors import CompletionCancelled


class LlamaCppLLMService(BaseLLMService):
    """Streams from the supervised llama-server through its OpenAI-compatible endpoint."""

    name = "llama.cpp"

    def __init__(self, supervisor: LlamaServerSupervisor, stop_sequences: Optional[list[str]] = None,
                 timeout: float = 300.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(timeout=timeout, transport=transport)
        self.supervisor = supervisor
        self.stop_sequences = stop_sequences or []

    def build_call(self, request: CompletionRequest) -> StreamCall:
        body = {
            "messages": to_chat_messages(request.messages),
            "stream": True,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if self.stop_sequences:
            body["stop"] = self.stop_sequences
        return StreamCall(url=f"{self.supervisor.base_url}/v1/chat/completions", body=body)

    def extract_token(self, event: dict) -> str:
        choices = event.get("choices") or [{}]
        return (choices[0].get("delta") or {}).get("content") or ""

    async def stream(self, request: CompletionRequest, on_token: Callable[[str], None]) -> str:
        request.cancellation_token.raise_if_cancelled(CompletionCancelled)
        async with self.supervisor.generating():
            return await super().stream(request, on_token)
