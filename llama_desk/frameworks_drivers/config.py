import json
import platform
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class ApiServerConfig(BaseModel):
    """Configuration for the HTTP surface.

    Attributes:
        host: Host for the API server.
        port: Port for the API server.
    """

    host: str = Field("127.0.0.1", description="Host for the API server")
    port: int = Field(8765, ge=1, le=65535, description="Port for the API server")


class ServerConfig(BaseModel):
    """Launch parameters for the local llama-server process.

    Attributes:
        binary_path: Path to the llama-server executable.
        model_path: Path to the GGUF model file.
        host: Address the server binds to.
        port: Port the server binds to.
        threads: Number of CPU threads (-t).
        context_size: Context window in tokens (-c).
        gpu_layers: Number of layers to offload to GPU (-ngl, 0 = CPU only).
    """

    binary_path: str = Field("", description="Path to the llama-server executable")
    model_path: str = Field("", description="Path to the GGUF model file")
    host: str = Field("127.0.0.1", description="Address the server binds to")
    port: int = Field(8080, ge=1, le=65535, description="Port the server binds to")
    threads: int = Field(6, gt=0, description="Number of CPU threads")
    context_size: int = Field(2048, gt=0, description="Context window in tokens")
    gpu_layers: int = Field(0, ge=0, description="Number of layers to offload to GPU (0 = CPU only)")


class SupervisorConfig(BaseModel):
    """Timing and retry policy for the process supervisor.

    Attributes:
        max_restart_attempts: Crash restarts allowed before giving up.
        startup_timeout: Seconds to wait for the first successful health check.
        startup_poll_interval: Seconds between startup health checks.
        health_check_interval: Seconds between health checks once ready.
        health_request_timeout: Timeout for a single health request.
        restart_delay: Seconds to wait before restarting after a crash.
        stop_timeout: Seconds to wait for graceful exit before killing.
        log_tail_lines: Number of server output lines kept for diagnostics.
    """

    max_restart_attempts: int = Field(3, ge=0, description="Crash restarts allowed before giving up")
    startup_timeout: float = Field(30.0, gt=0, description="Seconds to wait for the server to become healthy")
    startup_poll_interval: float = Field(1.0, gt=0, description="Seconds between startup health checks")
    health_check_interval: float = Field(5.0, gt=0, description="Seconds between health checks once ready")
    health_request_timeout: float = Field(3.0, gt=0, description="Timeout for a single health request")
    restart_delay: float = Field(2.0, ge=0, description="Seconds to wait before restarting after a crash")
    stop_timeout: float = Field(5.0, gt=0, description="Seconds to wait for graceful exit before killing")
    log_tail_lines: int = Field(200, gt=0, description="Server output lines kept for diagnostics")


def default_platform_asset() -> str:
    """Release asset name fragment for the host platform."""
    system = platform.system()
    machine = platform.machine().lower()
    arch = "arm64" if machine in ("arm64", "aarch64") else "x64"
    if system == "Darwin":
        return f"macos-{arch}"
    if system == "Windows":
        return f"win-cpu-{arch}"
    return f"ubuntu-{arch}"


class DownloadConfig(BaseModel):
    """Configuration for binary and model acquisition.

    Attributes:
        base_dir: Directory holding the llama-server binary and the models/ folder.
        release_index_url: JSON release index listing downloadable assets.
        platform_asset: Asset name fragment selecting the host platform build.
        excluded_variants: Asset name fragments of alternate backends to skip.
        max_redirects: Redirects followed before failing.
        chunk_size: Bytes read per network read.
        user_agent: User-Agent header sent to the release index.
        connect_timeout: Connect timeout in seconds.
    """

    base_dir: str = Field(str(Path.home() / ".llama-desk"), description="Directory for the binary and models")
    release_index_url: str = Field(
        "https://api.github.com/repos/ggml-org/llama.cpp/releases/latest",
        description="JSON release index listing downloadable assets",
    )
    platform_asset: str = Field(default_factory=default_platform_asset, description="Asset name fragment for this platform")
    excluded_variants: List[str] = Field(default_factory=lambda: ["vulkan", "rocm"], description="Alternate-backend builds to skip")
    max_redirects: int = Field(5, ge=0, description="Redirects followed before failing")
    chunk_size: int = Field(1024 * 1024, gt=0, description="Bytes read per network read")
    user_agent: str = Field("llama-desk", description="User-Agent header for the release index")
    connect_timeout: float = Field(15.0, gt=0, description="Connect timeout in seconds")


class ProvidersConfig(BaseModel):
    """Endpoints and wire options for the completion backends.

    Attributes:
        openai_base_url: OpenAI-style chat completions endpoint.
        anthropic_base_url: Anthropic messages endpoint.
        anthropic_version: Value of the anthropic-version header.
        google_base_url: Gemini models endpoint prefix.
        request_timeout: Read timeout for streaming requests.
        stop_sequences: Stop strings sent to the local backend.
    """

    openai_base_url: str = Field("https://api.openai.com/v1/chat/completions", description="OpenAI chat completions endpoint")
    anthropic_base_url: str = Field("https://api.anthropic.com/v1/messages", description="Anthropic messages endpoint")
    anthropic_version: str = Field("2023-06-01", description="anthropic-version header value")
    google_base_url: str = Field("https://generativelanguage.googleapis.com/v1beta/models", description="Gemini models endpoint prefix")
    request_timeout: float = Field(300.0, gt=0, description="Read timeout for streaming requests")
    stop_sequences: List[str] = Field(
        default_factory=lambda: ["<|user|>", "user:", "<|assistant|>", "assistant:"],
        description="Stop strings sent to the local backend",
    )


class AdmissionConfig(BaseModel):
    """Resource thresholds for the admission guard.

    Attributes:
        cpu_threshold_percent: Reject new generations above this CPU usage.
        min_free_memory_mb: Reject new generations below this free memory.
    """

    cpu_threshold_percent: float = Field(90.0, gt=0, le=100, description="Reject above this CPU usage")
    min_free_memory_mb: int = Field(500, ge=0, description="Reject below this free memory")


class ApiKeys(BaseModel):
    openai: str = ""
    anthropic: str = ""
    google: str = ""


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, knowledgeable AI assistant running locally on the user's machine. "
    "You provide clear, accurate, and thoughtful responses."
)


class ChatSettings(BaseModel):
    """User-facing generation settings.

    Attributes:
        system_prompt: Default system instruction.
        temperature: Sampling temperature.
        max_tokens: Maximum tokens generated per reply.
        context_size: Token budget of the rolling conversation window.
        api_keys: Keys for the cloud providers.
    """

    system_prompt: str = Field(DEFAULT_SYSTEM_PROMPT, description="Default system instruction")
    temperature: float = Field(0.7, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(1024, gt=0, description="Maximum tokens generated per reply")
    context_size: int = Field(2048, ge=0, description="Token budget of the rolling window")
    api_keys: ApiKeys = Field(default_factory=ApiKeys, description="Keys for the cloud providers")


class Config(BaseModel):
    """Main configuration class.

    Attributes:
        server: HTTP surface settings.
        llama_server: Local llama-server launch parameters.
        supervisor: Supervisor timing and retry policy.
        downloads: Artifact acquisition settings.
        providers: Completion backend endpoints.
        admission: Admission guard thresholds.
        chat: Generation settings and API keys.
        storage_path: Optional JSON file for conversation persistence.
    """

    server: ApiServerConfig = Field(default_factory=ApiServerConfig)
    llama_server: ServerConfig = Field(default_factory=ServerConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    downloads: DownloadConfig = Field(default_factory=DownloadConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    storage_path: Optional[str] = Field(None, description="Optional JSON file for conversation persistence")

    @classmethod
    def load(cls, config_path: str = "config.json") -> "Config":
        """Load and validate configuration from JSON file."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path) as f:
            data = json.load(f)

        return cls(**data)
