from typing import Optional

import httpx

from llama_desk.entities.completion_request import Backend
from llama_desk.frameworks_drivers.anthropic_service import AnthropicLLMService
from llama_desk.frameworks_drivers.config import ApiKeys, ProvidersConfig
from llama_desk.frameworks_drivers.gemini_service import GeminiLLMService
from llama_desk.frameworks_drivers.llama_cpp_service import LlamaCppLLMService
from llama_desk.frameworks_drivers.llama_server_supervisor import LlamaServerSupervisor
from llama_desk.frameworks_drivers.openai_service import OpenAILLMService
from llama_desk.shared.errors import ConfigurationError
from llama_desk.shared.protocols import LLMServiceProtocol


class LLMServiceFactory:
    def __init__(self, providers: ProvidersConfig, supervisor: LlamaServerSupervisor | None = None,
                 api_keys: ApiKeys | None = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.providers = providers
        self.supervisor = supervisor
        self.api_keys = api_keys or ApiKeys()
        self.transport = transport

    def create_service(self, backend: Backend | str) -> LLMServiceProtocol:
        try:
            backend = Backend(backend)
        except ValueError:
            raise ConfigurationError(f"Unsupported backend: {backend}") from None

        if backend == Backend.LOCAL:
            return self._create_llama_cpp_service()
        if backend == Backend.OPENAI:
            return OpenAILLMService(
                api_key=self._require_key("openai", "OpenAI"),
                base_url=self.providers.openai_base_url,
                timeout=self.providers.request_timeout,
                transport=self.transport,
            )
        if backend == Backend.ANTHROPIC:
            return AnthropicLLMService(
                api_key=self._require_key("anthropic", "Anthropic"),
                base_url=self.providers.anthropic_base_url,
                api_version=self.providers.anthropic_version,
                timeout=self.providers.request_timeout,
                transport=self.transport,
            )
        return GeminiLLMService(
            api_key=self._require_key("google", "Google AI"),
            base_url=self.providers.google_base_url,
            timeout=self.providers.request_timeout,
            transport=self.transport,
        )

    def _create_llama_cpp_service(self) -> LlamaCppLLMService:
        if not self.supervisor:
            raise ConfigurationError("Supervisor not provided for llama.cpp service")

        return LlamaCppLLMService(
            supervisor=self.supervisor,
            stop_sequences=self.providers.stop_sequences,
            timeout=self.providers.request_timeout,
            transport=self.transport,
        )

    def _require_key(self, field: str, label: str) -> str:
        key = getattr(self.api_keys, field)
        if not key:
            raise ConfigurationError(f"{label} API key not configured")
        return key
