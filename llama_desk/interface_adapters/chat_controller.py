import asyncio
import json
from typing import AsyncIterator, Optional

from fastapi import HTTPException
from fastapi.responses import JSONResponse, StreamingResponse

from llama_desk.entities.message import Message
from llama_desk.frameworks_drivers.conversation_store import ConversationStore
from llama_desk.interface_adapters.schemas import ChatRequest, CreateConversationRequest
from llama_desk.shared.error_utils import ErrorUtils
from llama_desk.shared.errors import OperationCancelled
from llama_desk.shared.logger import Logger
from llama_desk.use_cases.process_chat_completion import ProcessChatCompletion

logger = Logger.get(__name__)


def sse_event(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class ChatController:
    def __init__(self, process_chat_completion_use_case: ProcessChatCompletion, store: ConversationStore):
        self.process_chat_completion_use_case = process_chat_completion_use_case
        self.store = store

    def create_conversation(self, request: Optional[CreateConversationRequest] = None) -> dict:
        conversation = self.store.create_conversation(request.title if request else None)
        return conversation.model_dump()

    def list_conversations(self) -> list[dict]:
        return [c.model_dump() for c in self.store.list_conversations()]

    def get_messages(self, conversation_id: str) -> list[dict]:
        if self.store.get_conversation(conversation_id) is None:
            raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
        return [m.model_dump() for m in self.store.get_messages(conversation_id)]

    async def send_message(self, conversation_id: str, request: ChatRequest):
        """
        Stream one chat turn as ``text/event-stream``.

        Failures that happen before the first token (admission, readiness,
        missing key, provider error) are answered as a plain JSON error with
        the matching status code; later ones arrive as an ``error`` event.
        Cancellation always ends the stream with a ``cancelled`` event.
        """
        if self.store.get_conversation(conversation_id) is None:
            raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")

        queue: asyncio.Queue[str] = asyncio.Queue()
        task = asyncio.create_task(self.process_chat_completion_use_case.send_message(
            conversation_id,
            request.content,
            request.model_id,
            system_prompt=request.system_prompt,
            images=request.images,
            on_token=queue.put_nowait,
        ))

        first = asyncio.ensure_future(queue.get())
        await asyncio.wait({task, first}, return_when=asyncio.FIRST_COMPLETED)
        first_token: Optional[str] = None
        if first.done():
            first_token = first.result()
        else:
            first.cancel()
            error = task.exception()
            # A cancelled turn is still answered as a stream ending in a cancelled event.
            if error is not None and not isinstance(error, OperationCancelled):
                return self._error_response(error)

        return StreamingResponse(self._events(task, queue, first_token), media_type="text/event-stream")

    async def _events(self, task: asyncio.Task, queue: asyncio.Queue,
                      first_token: Optional[str]) -> AsyncIterator[str]:
        try:
            if first_token is not None:
                yield sse_event({"type": "token", "token": first_token})

            while not task.done():
                getter = asyncio.ensure_future(queue.get())
                await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter.done():
                    yield sse_event({"type": "token", "token": getter.result()})
                else:
                    getter.cancel()
            while not queue.empty():
                yield sse_event({"type": "token", "token": queue.get_nowait()})

            try:
                message: Message = task.result()
            except OperationCancelled:
                yield sse_event({"type": "cancelled"})
            except Exception as e:
                yield sse_event({"type": "error", "error": str(e), "error_type": ErrorUtils.error_type_for(e)})
            else:
                yield sse_event({"type": "complete", "message": message.model_dump()})
        finally:
            if not task.done():
                # Client went away mid-stream.
                logger.info("Chat stream closed by client, stopping generation")
                self.process_chat_completion_use_case.stop_generation()
                task.add_done_callback(lambda t: t.cancelled() or t.exception())

    @staticmethod
    def _error_response(error: BaseException) -> JSONResponse:
        return JSONResponse(
            ErrorUtils.format_error_response(str(error), ErrorUtils.error_type_for(error)),
            status_code=ErrorUtils.status_code_for(error),
        )

    def stop(self) -> dict:
        return {"stopped": self.process_chat_completion_use_case.stop_generation()}
