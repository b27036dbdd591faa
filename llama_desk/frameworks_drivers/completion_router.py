from typing import Callable, Optional

import httpx

from llama_desk.entities.completion_request import Backend, CompletionRequest
from llama_desk.entities.message import Message
from llama_desk.frameworks_drivers.config import ApiKeys, ProvidersConfig
from llama_desk.frameworks_drivers.llama_server_supervisor import LlamaServerSupervisor
from llama_desk.frameworks_drivers.llm_service_factory import LLMServiceFactory
from llama_desk.shared.cancellation import CancellationToken
from llama_desk.shared.errors import CompletionCancelled
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)


class CompletionRouter:
    """
    One call signature over the local and cloud completion backends.

    Stateless per call: API keys are read through ``api_keys_provider`` on
    every dispatch so settings changes apply to the next request.
    """

    def __init__(self, supervisor: LlamaServerSupervisor, providers: ProvidersConfig,
                 api_keys_provider: Callable[[], ApiKeys] | None = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.supervisor = supervisor
        self.providers = providers
        self.api_keys_provider = api_keys_provider or ApiKeys
        self.transport = transport

    async def stream(self, backend: Backend | str, messages: list[Message], temperature: float, max_tokens: int,
                     cancellation_token: CancellationToken, on_token: Callable[[str], None],
                     model_id: str | None = None) -> str:
        request = CompletionRequest(
            backend=backend,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            cancellation_token=cancellation_token,
            model_id=model_id,
        )
        return await self.dispatch(request, on_token)

    async def dispatch(self, request: CompletionRequest, on_token: Callable[[str], None]) -> str:
        request.cancellation_token.raise_if_cancelled(CompletionCancelled)
        factory = LLMServiceFactory(self.providers, self.supervisor, self.api_keys_provider(), self.transport)
        service = factory.create_service(request.backend)
        logger.info(f"Dispatching completion to {request.backend.value}"
                    + (f" ({request.model_id})" if request.model_id else ""))
        return await service.stream(request, on_token)
