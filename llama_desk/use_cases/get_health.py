from typing import Any

from llama_desk.frameworks_drivers.artifact_store import ArtifactStore
from llama_desk.frameworks_drivers.download_manager import DownloadManager
from llama_desk.frameworks_drivers.llama_server_supervisor import LlamaServerSupervisor
from llama_desk.frameworks_drivers.model_catalog import AVAILABLE_MODELS
from llama_desk.frameworks_drivers.system_monitor import SystemMonitor


class GetHealth:
    def __init__(self, supervisor: LlamaServerSupervisor, monitor: SystemMonitor,
                 downloads: DownloadManager, artifacts: ArtifactStore):
        self.supervisor = supervisor
        self.monitor = monitor
        self.downloads = downloads
        self.artifacts = artifacts

    def execute(self) -> dict[str, Any]:
        metrics = self.monitor.get_metrics()
        return {
            "status": "ok",
            "server": self.supervisor.status_snapshot(),
            "system": metrics.model_dump(),
            "generating": self.monitor.generating,
            "binary_downloaded": self.artifacts.is_binary_downloaded(),
            "downloaded_models": [m.id for m in self.artifacts.downloaded_models(AVAILABLE_MODELS)],
            "active_downloads": [task.model_dump() for task in self.downloads.active_downloads()],
        }
