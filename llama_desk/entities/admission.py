from typing import Optional

from pydantic import BaseModel


class AdmissionDecision(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class SystemMetrics(BaseModel):
    cpu_usage_percent: float
    free_memory_mb: int
    total_memory_mb: int


class SystemInfo(BaseModel):
    total_ram_mb: int
    free_ram_mb: int
    cpu_cores: int
    disk_free_gb: float
