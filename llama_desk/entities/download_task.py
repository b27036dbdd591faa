import time

from pydantic import BaseModel, Field


class DownloadTask(BaseModel):
    """A live download. Exists only between start and completion, cancellation or failure."""

    id: str
    source_url: str
    destination_path: str
    total_bytes: int = 0  # 0 when the server omits content-length
    bytes_transferred: int = 0
    started_at: float = Field(default_factory=time.monotonic)


class DownloadProgress(BaseModel):
    id: str
    filename: str
    downloaded: int
    total: int
    percent: int
    speed_mbps: float
    eta_seconds: int  # 0 when speed or total is unknown


class DownloadedModelInfo(BaseModel):
    id: str
    name: str
    filename: str
    size_bytes: int
    path: str
