from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    content: str = Field(min_length=1)
    model_id: Optional[str] = None
    system_prompt: Optional[str] = None
    images: Optional[list[str]] = None


class CreateConversationRequest(BaseModel):
    title: Optional[str] = None


class StartServerRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: Optional[str] = None


class ServerConfigUpdate(BaseModel):
    binary_path: Optional[str] = None
    model_path: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(None, ge=1, le=65535)
    threads: Optional[int] = Field(None, gt=0)
    context_size: Optional[int] = Field(None, gt=0)
    gpu_layers: Optional[int] = Field(None, ge=0)
