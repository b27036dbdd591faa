import asyncio

from fastapi import HTTPException

from llama_desk.frameworks_drivers.artifact_store import ArtifactStore
from llama_desk.frameworks_drivers.download_manager import DownloadManager
from llama_desk.frameworks_drivers.model_catalog import AVAILABLE_MODELS, get_downloadable_model
from llama_desk.shared.errors import LlamaDeskError, OperationCancelled
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)


class DownloadController:
    """
    Starts downloads in the background and answers immediately with the task id.
    Progress and outcome are observable through the download manager's events
    and the health endpoint.
    """

    def __init__(self, downloads: DownloadManager, artifacts: ArtifactStore):
        self.downloads = downloads
        self.artifacts = artifacts
        self._background: set[asyncio.Task] = set()

    def _spawn(self, task_id: str, coro) -> dict:
        if any(task.id == task_id for task in self.downloads.active_downloads()):
            coro.close()
            raise HTTPException(status_code=409, detail=f"Download already in progress: {task_id}")

        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._finished)
        return {"id": task_id, "status": "started"}

    def _finished(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, OperationCancelled):
            return
        if isinstance(error, LlamaDeskError):
            logger.warning(f"Background download ended with {error.error_type}: {error}")
        elif error is not None:
            logger.error(f"Background download crashed: {error}")

    async def download_model(self, model_id: str) -> dict:
        if get_downloadable_model(model_id) is None:
            raise HTTPException(status_code=404, detail=f"Unknown model: {model_id}")
        return self._spawn(f"model:{model_id}", self.downloads.download_model(model_id))

    async def download_binary(self) -> dict:
        return self._spawn("binary", self.downloads.download_binary())

    def cancel(self, task_id: str) -> dict:
        return {"id": task_id, "cancelled": self.downloads.cancel_download(task_id)}

    def list_models(self) -> dict:
        downloaded = {m.id: m for m in self.artifacts.downloaded_models(AVAILABLE_MODELS)}
        return {
            "binary_downloaded": self.artifacts.is_binary_downloaded(),
            "models": [
                {
                    **model.model_dump(),
                    "downloaded": model.id in downloaded,
                    "path": downloaded[model.id].path if model.id in downloaded else None,
                }
                for model in AVAILABLE_MODELS
            ],
        }

    def delete_model(self, model_id: str) -> dict:
        model = get_downloadable_model(model_id)
        if model is None:
            raise HTTPException(status_code=404, detail=f"Unknown model: {model_id}")
        return {"id": model_id, "deleted": self.artifacts.delete_model(model)}

    async def shutdown(self) -> None:
        for task in self.downloads.active_downloads():
            self.downloads.cancel_download(task.id)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
