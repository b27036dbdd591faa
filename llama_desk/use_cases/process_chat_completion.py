from typing import Callable, Optional

from llama_desk.entities.completion_request import Backend
from llama_desk.entities.message import Message
from llama_desk.frameworks_drivers.completion_router import CompletionRouter
from llama_desk.frameworks_drivers.model_catalog import get_cloud_model
from llama_desk.shared.cancellation import CancellationToken
from llama_desk.shared.errors import AdmissionRejectedError, BackendNotReadyError, CompletionCancelled
from llama_desk.shared.event_emitter import EventEmitter
from llama_desk.shared.logger import Logger
from llama_desk.shared.protocols import AdmissionGuardProtocol, ConversationStoreProtocol
from llama_desk.shared.token_utils import TokenUtils

logger = Logger.get(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_LENGTH = 60


class ProcessChatCompletion:
    """
    Runs one chat turn: admission, context assembly, streaming and persistence.

    Emits ``message_added``, ``stream_token``, ``stream_complete`` and
    ``stream_error`` through ``events``. A cancelled generation is not a
    failure and produces no ``stream_error``.
    """

    def __init__(self, router: CompletionRouter, store: ConversationStoreProtocol, guard: AdmissionGuardProtocol):
        self.router = router
        self.store = store
        self.guard = guard
        self.events = EventEmitter()
        self._active_token: Optional[CancellationToken] = None

    @property
    def is_generating(self) -> bool:
        return self._active_token is not None

    def _resolve_backend(self, model_id: Optional[str]) -> tuple[Backend, Optional[str]]:
        cloud_model = get_cloud_model(model_id) if model_id else None
        if cloud_model is not None:
            return Backend(cloud_model.provider), cloud_model.model_id

        supervisor = self.router.supervisor
        if not supervisor.is_ready:
            raise BackendNotReadyError("Local model not ready")
        return Backend.LOCAL, None

    async def send_message(self, conversation_id: str, content: str, model_id: Optional[str] = None,
                           system_prompt: Optional[str] = None, images: Optional[list[str]] = None,
                           on_token: Optional[Callable[[str], None]] = None) -> Message:
        decision = self.guard.try_acquire()
        if not decision.allowed:
            raise AdmissionRejectedError(decision.reason or "Generation not allowed")

        token = CancellationToken()
        self._active_token = token
        try:
            backend, provider_model = self._resolve_backend(model_id)
            settings = self.store.get_settings()

            user_message = Message(
                conversation_id=conversation_id,
                role="user",
                content=content,
                approx_token_count=TokenUtils.estimate_token_count(content),
                images=images or None,
            )
            self.store.add_message(user_message)
            self.events.emit("message_added", user_message)

            conversation = self.store.get_conversation(conversation_id)
            if conversation is not None and conversation.title == DEFAULT_TITLE:
                self.store.update_conversation_title(conversation_id, content[:TITLE_LENGTH])

            context = self.store.get_rolling_context(conversation_id, settings.context_size)
            system = Message(
                conversation_id=conversation_id,
                role="system",
                content=system_prompt if system_prompt is not None else settings.system_prompt,
            )

            def forward(text: str) -> None:
                self.events.emit("stream_token", {"conversation_id": conversation_id, "token": text})
                if on_token is not None:
                    on_token(text)

            try:
                reply = await self.router.stream(
                    backend,
                    [system, *context],
                    settings.temperature,
                    settings.max_tokens,
                    token,
                    forward,
                    model_id=provider_model,
                )
            except CompletionCancelled:
                logger.info(f"Generation cancelled for conversation {conversation_id}")
                raise
            except Exception as e:
                logger.error(f"Generation failed for conversation {conversation_id}: {e}")
                self.events.emit("stream_error", {"conversation_id": conversation_id, "error": str(e)})
                raise

            assistant_message = Message(
                conversation_id=conversation_id,
                role="assistant",
                content=reply,
                approx_token_count=TokenUtils.estimate_token_count(reply),
                model_id=model_id,
            )
            self.store.add_message(assistant_message)
            self.events.emit("message_added", assistant_message)
            self.events.emit("stream_complete", {"conversation_id": conversation_id, "message_id": assistant_message.id})
            return assistant_message
        finally:
            self._active_token = None
            self.guard.release()

    def stop_generation(self) -> bool:
        """Cancel the active generation, if any. Returns whether one was cancelled."""
        token, self._active_token = self._active_token, None
        if token is None:
            return False
        token.cancel()
        return True
