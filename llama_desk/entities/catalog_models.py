from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DownloadableModel(BaseModel):
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    size_gb: float = 0.0
    ram_required_gb: float = 0.0
    url: str
    filename: str
    tier: Literal["ultra-light", "light", "medium", "heavy", "agent"]


class CloudModel(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(min_length=1)
    name: str
    provider: Literal["openai", "anthropic", "google"]
    model_id: str
    description: str = ""
    supports_images: bool = False
