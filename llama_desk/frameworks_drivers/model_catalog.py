from typing import Optional

from llama_desk.entities.catalog_models import CloudModel, DownloadableModel

_HF = "https://huggingface.co"

AVAILABLE_MODELS: list[DownloadableModel] = [
    DownloadableModel(
        id="tinyllama-1.1b",
        name="TinyLlama 1.1B",
        description="Ultra-compact model, runs on almost any hardware.",
        size_gb=0.7,
        ram_required_gb=4,
        url=f"{_HF}/TheBloke/TinyLlama-1.1B-Chat-v1.0-GGUF/resolve/main/tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf",
        filename="tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf",
        tier="ultra-light",
    ),
    DownloadableModel(
        id="llama3.2-1b",
        name="Llama 3.2 1B",
        description="Smallest Llama, good for simple tasks.",
        size_gb=0.8,
        ram_required_gb=4,
        url=f"{_HF}/bartowski/Llama-3.2-1B-Instruct-GGUF/resolve/main/Llama-3.2-1B-Instruct-Q4_K_M.gguf",
        filename="Llama-3.2-1B-Instruct-Q4_K_M.gguf",
        tier="ultra-light",
    ),
    DownloadableModel(
        id="gemma2-2b",
        name="Gemma 2 2B",
        description="Efficient model with strong reasoning for its size.",
        size_gb=1.6,
        ram_required_gb=6,
        url=f"{_HF}/bartowski/gemma-2-2b-it-GGUF/resolve/main/gemma-2-2b-it-Q4_K_M.gguf",
        filename="gemma-2-2b-it-Q4_K_M.gguf",
        tier="light",
    ),
    DownloadableModel(
        id="llama3.2-3b",
        name="Llama 3.2 3B",
        description="Lightweight and fast, suited to 8 GB machines.",
        size_gb=2.0,
        ram_required_gb=6,
        url=f"{_HF}/bartowski/Llama-3.2-3B-Instruct-GGUF/resolve/main/Llama-3.2-3B-Instruct-Q4_K_M.gguf",
        filename="Llama-3.2-3B-Instruct-Q4_K_M.gguf",
        tier="light",
    ),
    DownloadableModel(
        id="mistral-7b",
        name="Mistral 7B v0.3",
        description="Fast general-purpose conversational model.",
        size_gb=4.4,
        ram_required_gb=10,
        url=f"{_HF}/bartowski/Mistral-7B-Instruct-v0.3-GGUF/resolve/main/Mistral-7B-Instruct-v0.3-Q4_K_M.gguf",
        filename="Mistral-7B-Instruct-v0.3-Q4_K_M.gguf",
        tier="medium",
    ),
    DownloadableModel(
        id="qwen2.5-7b",
        name="Qwen 2.5 7B",
        description="Multilingual model, strong at coding and math.",
        size_gb=4.7,
        ram_required_gb=10,
        url=f"{_HF}/bartowski/Qwen2.5-7B-Instruct-GGUF/resolve/main/Qwen2.5-7B-Instruct-Q4_K_M.gguf",
        filename="Qwen2.5-7B-Instruct-Q4_K_M.gguf",
        tier="medium",
    ),
    DownloadableModel(
        id="llama3.1-8b",
        name="Llama 3.1 8B",
        description="All-round 8B model.",
        size_gb=4.9,
        ram_required_gb=12,
        url=f"{_HF}/bartowski/Meta-Llama-3.1-8B-Instruct-GGUF/resolve/main/Meta-Llama-3.1-8B-Instruct-Q4_K_M.gguf",
        filename="Meta-Llama-3.1-8B-Instruct-Q4_K_M.gguf",
        tier="medium",
    ),
    DownloadableModel(
        id="codellama-13b",
        name="CodeLlama 13B",
        description="Large code-focused model.",
        size_gb=7.9,
        ram_required_gb=16,
        url=f"{_HF}/TheBloke/CodeLlama-13B-Instruct-GGUF/resolve/main/codellama-13b-instruct.Q4_K_M.gguf",
        filename="codellama-13b-instruct.Q4_K_M.gguf",
        tier="heavy",
    ),
]

CLOUD_MODELS: list[CloudModel] = [
    CloudModel(id="gpt-4o", name="GPT-4o", provider="openai", model_id="gpt-4o", supports_images=True),
    CloudModel(id="gpt-4o-mini", name="GPT-4o Mini", provider="openai", model_id="gpt-4o-mini", supports_images=True),
    CloudModel(id="claude-sonnet", name="Claude 3.5 Sonnet", provider="anthropic",
               model_id="claude-3-5-sonnet-20241022", supports_images=True),
    CloudModel(id="claude-haiku", name="Claude 3.5 Haiku", provider="anthropic",
               model_id="claude-3-5-haiku-20241022"),
    CloudModel(id="gemini-flash", name="Gemini 2.0 Flash", provider="google",
               model_id="gemini-2.0-flash", supports_images=True),
    CloudModel(id="gemini-flash-lite", name="Gemini 2.0 Flash Lite", provider="google",
               model_id="gemini-2.0-flash-lite", supports_images=True),
]


def get_downloadable_model(model_id: str) -> Optional[DownloadableModel]:
    return next((m for m in AVAILABLE_MODELS if m.id == model_id), None)


def get_cloud_model(model_id: str) -> Optional[CloudModel]:
    """Checks if a model ID belongs to a cloud model."""
    return next((m for m in CLOUD_MODELS if m.id == model_id), None)
