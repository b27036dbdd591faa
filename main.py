import os

import uvicorn

from llama_desk.frameworks_drivers.artifact_store import ArtifactStore
from llama_desk.frameworks_drivers.completion_router import CompletionRouter
from llama_desk.frameworks_drivers.config import Config
from llama_desk.frameworks_drivers.conversation_store import ConversationStore
from llama_desk.frameworks_drivers.download_manager import DownloadManager
from llama_desk.frameworks_drivers.llama_server_supervisor import LlamaServerSupervisor
from llama_desk.frameworks_drivers.system_monitor import SystemMonitor
from llama_desk.interface_adapters.api import API
from llama_desk.shared.logger import Logger
from llama_desk.use_cases.process_chat_completion import ProcessChatCompletion

if __name__ == "__main__":
    logger = Logger.get(__name__)

    try:
        config = Config.load(os.environ.get("LLAMA_DESK_CONFIG", "config.json"))

        # Override HTTP surface if set in environment
        if "LLAMA_DESK_HOST" in os.environ:
            config.server.host = os.environ["LLAMA_DESK_HOST"]
        if "LLAMA_DESK_PORT" in os.environ:
            config.server.port = int(os.environ["LLAMA_DESK_PORT"])

        # Instantiate dependencies
        artifacts = ArtifactStore(config.downloads.base_dir)
        supervisor = LlamaServerSupervisor(config.llama_server, config.supervisor)
        downloads = DownloadManager(artifacts, config.downloads)
        monitor = SystemMonitor(config.admission, config.downloads.base_dir)
        store = ConversationStore(config.storage_path, settings=config.chat)
        router = CompletionRouter(supervisor, config.providers, lambda: store.get_settings().api_keys)

        # Instantiate use cases
        process_chat_completion = ProcessChatCompletion(router, store, monitor)

        # Instantiate API
        api = API(supervisor, downloads, artifacts, monitor, store, process_chat_completion)

        logger.info("Starting Llama Desk...")
        # Start the uvicorn server
        uvicorn.run(api.app, host=config.server.host, port=config.server.port)
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise
