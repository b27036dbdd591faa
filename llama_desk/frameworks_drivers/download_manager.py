from __future__ import annotations

import asyncio
import os
import shutil
import tarfile
import threading
import time
import zipfile
from pathlib import Path
from typing import Optional

import httpx

from llama_desk.entities.download_task import DownloadProgress, DownloadTask
from llama_desk.frameworks_drivers.artifact_store import BINARY_NAME, ArtifactStore
from llama_desk.frameworks_drivers.config import DownloadConfig
from llama_desk.frameworks_drivers.model_catalog import get_downloadable_model
from llama_desk.shared.cancellation import CancellationToken
from llama_desk.shared.errors import (
    BinaryExtractionError,
    ConfigurationError,
    DownloadCancelled,
    DownloadError,
    TooManyRedirectsError,
    TransportError,
)
from llama_desk.shared.event_emitter import EventEmitter
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)

ARCHIVE_EXTENSIONS = (".tar.gz", ".zip")
BYTES_PER_MB = 1024 * 1024


class DownloadManager:
    """
    Acquires model files and the llama-server binary over HTTP(S).

    Every transfer writes to ``<dest>.download`` and is renamed onto the
    destination only after the full body arrived, so the destination is
    either absent or complete. Emits ``progress``, ``complete``, ``error``
    and ``cancelled`` events through ``events``.
    """

    def __init__(self, store: ArtifactStore, config: DownloadConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.store = store
        self.config = config
        self.events = EventEmitter()
        self._transport = transport
        self._active: dict[str, CancellationToken] = {}
        self._tasks: dict[str, DownloadTask] = {}
        self._lock = threading.Lock()

    def _client(self, read_timeout: float = 60.0) -> httpx.AsyncClient:
        timeout = httpx.Timeout(read=read_timeout, connect=self.config.connect_timeout, write=30.0, pool=10.0)
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=timeout,
            follow_redirects=True,
            max_redirects=self.config.max_redirects,
        )

    def active_downloads(self) -> list[DownloadTask]:
        with self._lock:
            return [task.model_copy() for task in self._tasks.values()]

    def cancel_download(self, task_id: str) -> bool:
        """
        Cancel a live download. Unknown ids are ignored; returns whether one was cancelled.

        The id stays registered until the download has cleaned up, so a restart
        under the same id is rejected until then.
        """
        with self._lock:
            token = self._active.get(task_id)
        if token is None or token.is_cancelled:
            return False
        logger.info(f"Cancelling download {task_id}")
        token.cancel()
        return True

    async def download_file(self, url: str, dest_path: str | Path, task_id: str) -> Path:
        """
        Download ``url`` to ``dest_path``, following up to ``max_redirects`` redirects.

        Raises:
            DownloadCancelled: the task was cancelled through ``cancel_download``.
            TooManyRedirectsError: the redirect chain exceeded the limit.
            DownloadError: non-200 final status or a truncated body.
            TransportError: connection-level failure.
        """
        destination = Path(dest_path)
        temp_path = ArtifactStore.temp_path_for(destination)
        token = CancellationToken()
        task = DownloadTask(id=task_id, source_url=url, destination_path=str(destination))

        with self._lock:
            if task_id in self._active:
                raise DownloadError(f"Download already in progress: {task_id}")
            self._active[task_id] = token
            self._tasks[task_id] = task

        logger.info(f"Starting download {task_id}: {url} -> {destination}")
        try:
            await token.run(self._transfer(task, temp_path), DownloadCancelled)
            os.replace(temp_path, destination)
        except DownloadCancelled:
            logger.info(f"Download {task_id} cancelled")
            self.events.emit("cancelled", {"id": task_id})
            raise
        except Exception as e:
            logger.error(f"Download {task_id} failed: {e}")
            self.events.emit("error", {"id": task_id, "error": str(e)})
            raise
        finally:
            with self._lock:
                if self._active.get(task_id) is token:
                    del self._active[task_id]
                if self._tasks.get(task_id) is task:
                    del self._tasks[task_id]
            self._discard(temp_path)

        logger.info(f"Download {task_id} complete: {destination}")
        self.events.emit("complete", {"id": task_id, "path": str(destination)})
        return destination

    async def _transfer(self, task: DownloadTask, temp_path: Path) -> None:
        temp_path.parent.mkdir(parents=True, exist_ok=True)
        filename = Path(task.destination_path).name
        try:
            async with self._client() as client:
                async with client.stream("GET", task.source_url, headers={"Accept-Encoding": "identity"}) as response:
                    if response.status_code != 200:
                        raise DownloadError(f"Download failed: HTTP {response.status_code}")

                    task.total_bytes = int(response.headers.get("content-length") or 0)
                    with open(temp_path, "wb") as f:
                        async for chunk in response.aiter_bytes(self.config.chunk_size):
                            f.write(chunk)
                            task.bytes_transferred += len(chunk)
                            self.events.emit("progress", self._progress(task, filename))
        except httpx.TooManyRedirects as e:
            raise TooManyRedirectsError() from e
        except httpx.HTTPError as e:
            raise TransportError(f"Download failed: {e}") from e

        if task.total_bytes and task.bytes_transferred != task.total_bytes:
            raise DownloadError(
                f"Download incomplete: received {task.bytes_transferred} of {task.total_bytes} bytes"
            )

    @staticmethod
    def _progress(task: DownloadTask, filename: str) -> DownloadProgress:
        downloaded, total = task.bytes_transferred, task.total_bytes
        elapsed = time.monotonic() - task.started_at
        speed = (downloaded / BYTES_PER_MB) / elapsed if elapsed > 0 else 0.0
        if total > 0 and speed > 0:
            eta = ((total - downloaded) / BYTES_PER_MB) / speed
        else:
            eta = 0.0
        return DownloadProgress(
            id=task.id,
            filename=filename,
            downloaded=downloaded,
            total=total,
            percent=min(100, round(downloaded / total * 100)) if total > 0 else 0,
            speed_mbps=round(speed, 2),
            eta_seconds=round(eta),
        )

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")

    async def download_model(self, model_id: str) -> Path:
        """Downloads a catalog model into the models directory."""
        model = get_downloadable_model(model_id)
        if model is None:
            raise ConfigurationError(f"Unknown model: {model_id}")
        return await self.download_file(model.url, self.store.model_path(model.filename), f"model:{model_id}")

    def _matches_platform(self, asset_name: str) -> bool:
        name = asset_name.lower()
        if self.config.platform_asset.lower() not in name:
            return False
        if not name.endswith(ARCHIVE_EXTENSIONS):
            return False
        return not any(variant.lower() in name for variant in self.config.excluded_variants)

    async def resolve_latest_binary_url(self) -> str:
        """Find the newest release archive for this platform in the release index."""
        headers = {"User-Agent": self.config.user_agent, "Accept": "application/json"}
        try:
            async with self._client(read_timeout=30.0) as client:
                response = await client.get(self.config.release_index_url, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to fetch release index: {e}") from e

        if response.status_code != 200:
            raise DownloadError(f"Failed to fetch release index: HTTP {response.status_code}")
        try:
            release = response.json()
        except ValueError as e:
            raise DownloadError("Failed to parse release index") from e

        assets = release.get("assets") if isinstance(release, dict) else None
        if not isinstance(assets, list):
            raise DownloadError("Failed to parse release index")

        for asset in assets:
            name = asset.get("name", "")
            url = asset.get("browser_download_url")
            if url and self._matches_platform(name):
                logger.info(f"Selected release asset {name}")
                return url

        raise DownloadError(f"No {self.config.platform_asset} binary found in latest release")

    async def download_binary(self) -> Path:
        """
        Download the latest llama-server release for this platform and install it.

        1. Resolves the archive URL from the release index
        2. Downloads the archive with the regular download primitive
        3. Extracts it and moves the executable (plus its sibling libraries) into base_dir
        """
        url = await self.resolve_latest_binary_url()
        archive_name = "llama-bin.zip" if url.lower().endswith(".zip") else "llama-bin.tar.gz"
        archive_path = self.store.base_dir / archive_name
        await self.download_file(url, archive_path, "binary")
        try:
            return await asyncio.to_thread(self._install_binary, archive_path)
        finally:
            self._discard(archive_path)

    def _install_binary(self, archive_path: Path) -> Path:
        scratch = self.store.base_dir / "_extract_tmp"
        shutil.rmtree(scratch, ignore_errors=True)
        scratch.mkdir(parents=True)
        staged: list[Path] = []
        try:
            self._extract(archive_path, scratch)
            found = next((p for p in sorted(scratch.rglob(BINARY_NAME)) if p.is_file()), None)
            if found is None:
                raise BinaryExtractionError(f"{BINARY_NAME} binary not found in archive")

            # Stage everything first so a failure never leaves a half-written binary.
            for source in sorted(found.parent.iterdir()):
                if not source.is_file():
                    continue
                partial = self.store.base_dir / f"{source.name}.partial"
                shutil.copy2(source, partial)
                staged.append(partial)

            for partial in staged:
                os.replace(partial, partial.with_name(partial.name[: -len(".partial")]))
            staged.clear()

            destination = self.store.binary_path
            os.chmod(destination, 0o755)
            logger.info(f"Installed llama-server at {destination}")
            return destination
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            raise BinaryExtractionError(f"Failed to extract llama-server: {e}") from e
        finally:
            for partial in staged:
                self._discard(partial)
            shutil.rmtree(scratch, ignore_errors=True)

    @staticmethod
    def _extract(archive_path: Path, target: Path) -> None:
        if archive_path.name.lower().endswith(".zip"):
            with zipfile.ZipFile(archive_path) as archive:
                archive.extractall(target)
        else:
            with tarfile.open(archive_path, "r:*") as archive:
                archive.extractall(target, filter="data")
