from typing import Optional

from fastapi import HTTPException

from llama_desk.frameworks_drivers.artifact_store import ArtifactStore
from llama_desk.frameworks_drivers.llama_server_supervisor import LlamaServerSupervisor
from llama_desk.frameworks_drivers.model_catalog import AVAILABLE_MODELS, get_downloadable_model
from llama_desk.interface_adapters.schemas import ServerConfigUpdate, StartServerRequest
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)


class ServerController:
    def __init__(self, supervisor: LlamaServerSupervisor, artifacts: ArtifactStore):
        self.supervisor = supervisor
        self.artifacts = artifacts

    def _resolve_paths(self, model_id: Optional[str]) -> dict[str, str]:
        """Fill in unset launch paths from the artifact directory."""
        config = self.supervisor.config
        updates: dict[str, str] = {}
        if not config.binary_path:
            updates["binary_path"] = str(self.artifacts.binary_path)

        if model_id:
            model = get_downloadable_model(model_id)
            if model is None:
                raise HTTPException(status_code=404, detail=f"Unknown model: {model_id}")
            updates["model_path"] = str(self.artifacts.model_path(model.filename))
        elif not config.model_path:
            available = self.artifacts.first_available_model_path(AVAILABLE_MODELS)
            if available is not None:
                updates["model_path"] = str(available)
        return updates

    async def start(self, request: Optional[StartServerRequest] = None) -> dict:
        if not self.supervisor.is_ready:
            updates = self._resolve_paths(request.model_id if request else None)
            if updates:
                self.supervisor.update_config(**updates)

        started = await self.supervisor.start()
        snapshot = self.supervisor.status_snapshot()
        snapshot["started"] = started
        if not started:
            snapshot["recent_output"] = self.supervisor.recent_output()[-20:]
        return snapshot

    async def stop(self) -> dict:
        await self.supervisor.stop()
        return self.supervisor.status_snapshot()

    def update_config(self, update: ServerConfigUpdate) -> dict:
        config = self.supervisor.update_config(**update.model_dump(exclude_none=True))
        return config.model_dump()
