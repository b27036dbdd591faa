import time
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field


class Message(BaseModel):
    """A single chat message. Treated as read-only once created."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    conversation_id: str = Field(min_length=1)
    role: Literal["user", "assistant", "system"]
    content: str
    approx_token_count: int = Field(0, ge=0)  # precomputed, never recomputed by the trimmer
    created_at: float = Field(default_factory=time.time)
    images: Optional[list[str]] = None  # data URLs for multimodal messages
    model_id: Optional[str] = None


class Conversation(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = "New Chat"
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    message_count: int = 0
