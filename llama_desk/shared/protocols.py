from typing import TYPE_CHECKING, Callable, Optional, Protocol

if TYPE_CHECKING:
    from llama_desk.entities.admission import AdmissionDecision
    from llama_desk.entities.completion_request import CompletionRequest
    from llama_desk.entities.message import Conversation, Message
    from llama_desk.frameworks_drivers.config import ChatSettings


class LLMServiceProtocol(Protocol):
    async def stream(self, request: 'CompletionRequest', on_token: Callable[[str], None]) -> str: ...


class ConversationStoreProtocol(Protocol):
    def get_conversation(self, conversation_id: str) -> Optional['Conversation']: ...

    def update_conversation_title(self, conversation_id: str, title: str) -> None: ...

    def add_message(self, message: 'Message') -> 'Message': ...

    def get_rolling_context(self, conversation_id: str, max_tokens: int) -> list['Message']: ...

    def get_settings(self) -> 'ChatSettings': ...


class AdmissionGuardProtocol(Protocol):
    def can_generate(self) -> 'AdmissionDecision': ...

    def set_generating(self, generating: bool) -> None: ...

    def try_acquire(self) -> 'AdmissionDecision': ...

    def release(self) -> None: ...
