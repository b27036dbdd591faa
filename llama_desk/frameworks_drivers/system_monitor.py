import threading
from pathlib import Path
from typing import Optional

import psutil

from llama_desk.entities.admission import AdmissionDecision, SystemInfo, SystemMetrics
from llama_desk.frameworks_drivers.config import AdmissionConfig
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)

BYTES_PER_MB = 1024 * 1024
BYTES_PER_GB = 1024 ** 3


class SystemMonitor:
    """
    Admission guard: refuses a new generation while one is running or while
    CPU or free memory is past the configured thresholds.
    """

    def __init__(self, config: Optional[AdmissionConfig] = None, base_dir: Optional[str] = None):
        self.config = config or AdmissionConfig()
        self.base_dir = base_dir
        self._is_generating = False
        self._lock = threading.Lock()
        # Prime the counter so later non-blocking reads compare against this point.
        psutil.cpu_percent(interval=None)

    @property
    def generating(self) -> bool:
        return self._is_generating

    def get_metrics(self) -> SystemMetrics:
        memory = psutil.virtual_memory()
        return SystemMetrics(
            cpu_usage_percent=psutil.cpu_percent(interval=None),
            free_memory_mb=round(memory.available / BYTES_PER_MB),
            total_memory_mb=round(memory.total / BYTES_PER_MB),
        )

    def get_system_info(self) -> SystemInfo:
        memory = psutil.virtual_memory()
        directory = Path(self.base_dir) if self.base_dir else Path.home()
        while not directory.exists() and directory != directory.parent:
            directory = directory.parent
        try:
            disk_free_gb = round(psutil.disk_usage(str(directory)).free / BYTES_PER_GB, 1)
        except OSError as e:
            logger.warning(f"Could not read disk usage for {directory}: {e}")
            disk_free_gb = 0.0

        return SystemInfo(
            total_ram_mb=round(memory.total / BYTES_PER_MB),
            free_ram_mb=round(memory.available / BYTES_PER_MB),
            cpu_cores=psutil.cpu_count() or 1,
            disk_free_gb=disk_free_gb,
        )

    def can_generate(self) -> AdmissionDecision:
        if self._is_generating:
            return AdmissionDecision(allowed=False, reason="A generation is already in progress")
        return self._check_resources()

    def _check_resources(self) -> AdmissionDecision:
        metrics = self.get_metrics()
        if metrics.cpu_usage_percent > self.config.cpu_threshold_percent:
            return AdmissionDecision(allowed=False, reason=f"CPU usage is too high ({metrics.cpu_usage_percent:.0f}%)")
        if metrics.free_memory_mb < self.config.min_free_memory_mb:
            return AdmissionDecision(allowed=False, reason=f"Free memory too low ({metrics.free_memory_mb}MB)")
        return AdmissionDecision(allowed=True)

    def set_generating(self, generating: bool) -> None:
        with self._lock:
            self._is_generating = generating

    def try_acquire(self) -> AdmissionDecision:
        """Check and mark as generating in one step; two concurrent callers never both pass."""
        with self._lock:
            if self._is_generating:
                return AdmissionDecision(allowed=False, reason="A generation is already in progress")
            decision = self._check_resources()
            if decision.allowed:
                self._is_generating = True
            else:
                logger.warning(f"Generation rejected: {decision.reason}")
            return decision

    def release(self) -> None:
        self.set_generating(False)
