from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from llama_desk.frameworks_drivers.artifact_store import ArtifactStore
from llama_desk.frameworks_drivers.conversation_store import ConversationStore
from llama_desk.frameworks_drivers.download_manager import DownloadManager
from llama_desk.frameworks_drivers.llama_server_supervisor import LlamaServerSupervisor
from llama_desk.frameworks_drivers.system_monitor import SystemMonitor
from llama_desk.interface_adapters.chat_controller import ChatController
from llama_desk.interface_adapters.download_controller import DownloadController
from llama_desk.interface_adapters.health_controller import HealthController
from llama_desk.interface_adapters.schemas import (
    ChatRequest,
    CreateConversationRequest,
    ServerConfigUpdate,
    StartServerRequest,
)
from llama_desk.interface_adapters.server_controller import ServerController
from llama_desk.shared.error_utils import ErrorUtils
from llama_desk.shared.errors import LlamaDeskError
from llama_desk.shared.logger import Logger
from llama_desk.use_cases.get_health import GetHealth
from llama_desk.use_cases.process_chat_completion import ProcessChatCompletion

logger = Logger.get(__name__)


class API:
    def __init__(self, supervisor: LlamaServerSupervisor, downloads: DownloadManager, artifacts: ArtifactStore,
                 monitor: SystemMonitor, store: ConversationStore, process_chat_completion: ProcessChatCompletion):
        self.supervisor = supervisor
        self.downloads = downloads
        self.artifacts = artifacts
        self.monitor = monitor
        self.store = store
        self.process_chat_completion = process_chat_completion

        self.chat_controller = ChatController(process_chat_completion, store)
        self.health_controller = HealthController(GetHealth(supervisor, monitor, downloads, artifacts))
        self.server_controller = ServerController(supervisor, artifacts)
        self.download_controller = DownloadController(downloads, artifacts)

        self.app = FastAPI(title="Llama Desk", version="0.1.0", lifespan=self._lifespan)

        # Dependency functions
        self.get_chat_controller = lambda: self.chat_controller
        self.get_health_controller = lambda: self.health_controller
        self.get_server_controller = lambda: self.server_controller
        self.get_download_controller = lambda: self.download_controller

        self._register_error_handlers()
        self._register_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        logger.info("Shutting down: stopping generation, downloads and llama-server")
        self.process_chat_completion.stop_generation()
        await self.download_controller.shutdown()
        await self.supervisor.stop()

    def _register_error_handlers(self):
        async def llama_desk_error_handler(request: Request, exc: LlamaDeskError) -> JSONResponse:
            return JSONResponse(
                ErrorUtils.format_error_response(str(exc), exc.error_type),
                status_code=ErrorUtils.status_code_for(exc),
            )

        self.app.add_exception_handler(LlamaDeskError, llama_desk_error_handler)

    def _register_routes(self):
        def health_handler(controller=Depends(self.get_health_controller)):
            return controller.health()

        async def start_server_handler(request: Optional[StartServerRequest] = None,
                                       controller=Depends(self.get_server_controller)) -> dict:
            return await controller.start(request)

        async def stop_server_handler(controller=Depends(self.get_server_controller)) -> dict:
            return await controller.stop()

        def update_server_config_handler(update: ServerConfigUpdate,
                                         controller=Depends(self.get_server_controller)) -> dict:
            return controller.update_config(update)

        async def download_model_handler(model_id: str, controller=Depends(self.get_download_controller)) -> dict:
            return await controller.download_model(model_id)

        async def download_binary_handler(controller=Depends(self.get_download_controller)) -> dict:
            return await controller.download_binary()

        def cancel_download_handler(task_id: str, controller=Depends(self.get_download_controller)) -> dict:
            return controller.cancel(task_id)

        def list_models_handler(controller=Depends(self.get_download_controller)) -> dict:
            return controller.list_models()

        def delete_model_handler(model_id: str, controller=Depends(self.get_download_controller)) -> dict:
            return controller.delete_model(model_id)

        def create_conversation_handler(request: Optional[CreateConversationRequest] = None,
                                        controller=Depends(self.get_chat_controller)) -> dict:
            return controller.create_conversation(request)

        def list_conversations_handler(controller=Depends(self.get_chat_controller)) -> list:
            return controller.list_conversations()

        def get_messages_handler(conversation_id: str, controller=Depends(self.get_chat_controller)) -> list:
            return controller.get_messages(conversation_id)

        async def chat_handler(conversation_id: str, request: ChatRequest,
                               controller=Depends(self.get_chat_controller)):
            return await controller.send_message(conversation_id, request)

        def stop_chat_handler(controller=Depends(self.get_chat_controller)) -> dict:
            return controller.stop()

        self.app.get("/health")(health_handler)
        self.app.post("/server/start")(start_server_handler)
        self.app.post("/server/stop")(stop_server_handler)
        self.app.patch("/server/config")(update_server_config_handler)
        self.app.get("/downloads/models")(list_models_handler)
        self.app.post("/downloads/models/{model_id}")(download_model_handler)
        self.app.delete("/downloads/models/{model_id}")(delete_model_handler)
        self.app.post("/downloads/binary")(download_binary_handler)
        self.app.delete("/downloads/{task_id}")(cancel_download_handler)
        self.app.post("/conversations")(create_conversation_handler)
        self.app.get("/conversations")(list_conversations_handler)
        self.app.get("/conversations/{conversation_id}/messages")(get_messages_handler)
        # Registered before /chat/{conversation_id} so "stop" is not taken as an id.
        self.app.post("/chat/stop")(stop_chat_handler)
        self.app.post("/chat/{conversation_id}")(chat_handler)
