"""
Test configuration and fixtures for llama desk tests.
"""
import json
import shutil
import tempfile
from pathlib import Path
from typing import Callable

import pytest

from llama_desk.entities.message import Message
from llama_desk.frameworks_drivers.artifact_store import ArtifactStore
from llama_desk.frameworks_drivers.config import Config, DownloadConfig, ServerConfig, SupervisorConfig


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def artifact_files(temp_dir):
    """A fake llama-server binary and model file on disk."""
    binary = temp_dir / "llama-server"
    binary.write_bytes(b"#!/bin/sh\n")
    model = temp_dir / "model.gguf"
    model.write_bytes(b"GGUF")
    return binary, model


@pytest.fixture
def server_config(artifact_files):
    binary, model = artifact_files
    return ServerConfig(binary_path=str(binary), model_path=str(model), port=18080)


@pytest.fixture
def fast_policy():
    """Supervisor policy with intervals small enough for tests."""
    return SupervisorConfig(
        max_restart_attempts=3,
        startup_timeout=1.0,
        startup_poll_interval=0.01,
        health_check_interval=30.0,
        health_request_timeout=0.1,
        restart_delay=0.01,
        stop_timeout=0.1,
    )


@pytest.fixture
def artifact_store(temp_dir):
    return ArtifactStore(str(temp_dir / "artifacts"))


@pytest.fixture
def download_config(artifact_store):
    return DownloadConfig(
        base_dir=str(artifact_store.base_dir),
        release_index_url="https://api.example.test/releases/latest",
        platform_asset="ubuntu-x64",
        chunk_size=4,
    )


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing."""
    return {
        "server": {"host": "127.0.0.1", "port": 9000},
        "llama_server": {"binary_path": "/opt/llama/llama-server", "model_path": "/opt/models/a.gguf", "threads": 4},
        "supervisor": {"max_restart_attempts": 2},
        "chat": {"temperature": 0.2, "api_keys": {"openai": "sk-test"}},
    }


@pytest.fixture
def config_file(temp_dir, sample_config_data):
    """Create a temporary config file."""
    config_path = temp_dir / "config.json"
    with open(config_path, "w") as f:
        json.dump(sample_config_data, f, indent=2)
    return str(config_path)


@pytest.fixture
def sample_config(sample_config_data):
    return Config(**sample_config_data)


@pytest.fixture
def make_message() -> Callable[..., Message]:
    def _make(content: str = "hello", role: str = "user", tokens: int = 1,
              conversation_id: str = "conv-1", **kwargs) -> Message:
        return Message(conversation_id=conversation_id, role=role, content=content,
                       approx_token_count=tokens, **kwargs)

    return _make
