from unittest.mock import Mock

import pytest

from llama_desk.entities.completion_request import Backend
from llama_desk.frameworks_drivers.anthropic_service import AnthropicLLMService
from llama_desk.frameworks_drivers.config import ApiKeys, ProvidersConfig
from llama_desk.frameworks_drivers.gemini_service import GeminiLLMService
from llama_desk.frameworks_drivers.llama_cpp_service import LlamaCppLLMService
from llama_desk.frameworks_drivers.llm_service_factory import LLMServiceFactory
from llama_desk.frameworks_drivers.openai_service import OpenAILLMService
from llama_desk.shared.errors import ConfigurationError


class TestLLMServiceFactory:
    @pytest.fixture
    def keys(self):
        return ApiKeys(openai="sk", anthropic="ak", google="gk")

    def test_create_llama_cpp_service(self, keys):
        mock_supervisor = Mock()
        providers = ProvidersConfig(stop_sequences=["</s>"], request_timeout=12.0)

        service = LLMServiceFactory(providers, mock_supervisor, keys).create_service("local")

        assert isinstance(service, LlamaCppLLMService)
        assert service.supervisor == mock_supervisor
        assert service.stop_sequences == ["</s>"]
        assert service.timeout == 12.0

    def test_create_cloud_services(self, keys):
        factory = LLMServiceFactory(ProvidersConfig(anthropic_version="2024-01-01"), Mock(), keys)

        openai = factory.create_service(Backend.OPENAI)
        anthropic = factory.create_service(Backend.ANTHROPIC)
        gemini = factory.create_service(Backend.GOOGLE)

        assert isinstance(openai, OpenAILLMService) and openai.api_key == "sk"
        assert isinstance(anthropic, AnthropicLLMService) and anthropic.api_version == "2024-01-01"
        assert isinstance(gemini, GeminiLLMService) and gemini.api_key == "gk"

    @pytest.mark.parametrize("backend,label", [
        (Backend.OPENAI, "OpenAI"),
        (Backend.ANTHROPIC, "Anthropic"),
        (Backend.GOOGLE, "Google AI"),
    ])
    def test_missing_key(self, backend, label):
        factory = LLMServiceFactory(ProvidersConfig(), Mock(), ApiKeys())

        with pytest.raises(ConfigurationError, match=f"{label} API key not configured"):
            factory.create_service(backend)

    def test_invalid_backend(self, keys):
        with pytest.raises(ConfigurationError, match="Unsupported backend: cohere"):
            LLMServiceFactory(ProvidersConfig(), Mock(), keys).create_service("cohere")

    def test_llama_cpp_missing_supervisor(self):
        with pytest.raises(ConfigurationError, match="Supervisor not provided"):
            LLMServiceFactory(ProvidersConfig()).create_service(Backend.LOCAL)
