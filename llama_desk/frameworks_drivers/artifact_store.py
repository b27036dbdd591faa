import os
import sys
from pathlib import Path
from typing import Iterable, Optional

from llama_desk.entities.catalog_models import DownloadableModel
from llama_desk.entities.download_task import DownloadedModelInfo
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)

BINARY_NAME = "llama-server.exe" if sys.platform == "win32" else "llama-server"
TEMP_SUFFIX = ".download"


class ArtifactStore:
    """
    Filesystem view of the binary and model artifacts.

    Layout: ``<base_dir>/llama-server`` and ``<base_dir>/models/<filename>``.
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.models_dir = self.base_dir / "models"
        self.models_dir.mkdir(parents=True, exist_ok=True)

    @property
    def binary_path(self) -> Path:
        return self.base_dir / BINARY_NAME

    def model_path(self, filename: str) -> Path:
        return self.models_dir / filename

    @staticmethod
    def temp_path_for(destination: Path) -> Path:
        return destination.with_name(destination.name + TEMP_SUFFIX)

    @staticmethod
    def exists(path: str | Path) -> bool:
        return bool(path) and Path(path).is_file()

    @staticmethod
    def size_of(path: str | Path) -> Optional[int]:
        try:
            return Path(path).stat().st_size
        except OSError:
            return None

    def is_binary_downloaded(self) -> bool:
        return self.exists(self.binary_path)

    def is_model_downloaded(self, model: DownloadableModel) -> bool:
        return self.exists(self.model_path(model.filename))

    def first_available_model_path(self, catalog: Iterable[DownloadableModel]) -> Optional[Path]:
        """Return the first catalog model present on disk, else any .gguf in the models dir."""
        for model in catalog:
            path = self.model_path(model.filename)
            if self.exists(path):
                return path

        ggufs = sorted(p for p in self.models_dir.glob("*.gguf") if p.is_file())
        return ggufs[0] if ggufs else None

    def downloaded_models(self, catalog: Iterable[DownloadableModel]) -> list[DownloadedModelInfo]:
        result = []
        for model in catalog:
            path = self.model_path(model.filename)
            size = self.size_of(path)
            if size is None:
                continue
            result.append(DownloadedModelInfo(
                id=model.id, name=model.name, filename=model.filename, size_bytes=size, path=str(path),
            ))
        return result

    def delete_model(self, model: DownloadableModel) -> bool:
        """Delete a downloaded model file. Returns False if it was not present."""
        path = self.model_path(model.filename)
        if not self.exists(path):
            return False
        os.remove(path)
        logger.info(f"Deleted model file {path}")
        return True
