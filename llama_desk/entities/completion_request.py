from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from llama_desk.entities.message import Message
from llama_desk.shared.cancellation import CancellationToken


class Backend(str, Enum):
    LOCAL = "local"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class CompletionRequest(BaseModel):
    """Ephemeral per-call request handed to the completion router."""

    model_config = ConfigDict(arbitrary_types_allowed=True, protected_namespaces=())

    backend: Backend
    messages: list[Message]
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(1024, gt=0)
    cancellation_token: CancellationToken = Field(default_factory=CancellationToken)
    model_id: Optional[str] = None  # provider-side model name, unused by the local backend
