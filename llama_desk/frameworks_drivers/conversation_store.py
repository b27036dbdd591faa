import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from llama_desk.entities.message import Conversation, Message
from llama_desk.frameworks_drivers.config import ChatSettings
from llama_desk.shared.logger import Logger
from llama_desk.use_cases.trim_context_window import trim_to_budget

logger = Logger.get(__name__)


class StoreData(BaseModel):
    conversations: list[Conversation] = Field(default_factory=list)
    messages: dict[str, list[Message]] = Field(default_factory=dict)
    settings: ChatSettings = Field(default_factory=ChatSettings)


class ConversationStore:
    """
    Conversations, messages and chat settings, kept in memory and optionally
    dumped to a JSON file after every change.
    """

    def __init__(self, storage_path: Optional[str] = None, settings: Optional[ChatSettings] = None):
        self.storage_path = Path(storage_path) if storage_path else None
        self._lock = threading.RLock()
        self._data = self._load()
        if settings is not None and not self._loaded_from_disk:
            self._data.settings = settings

    def _load(self) -> StoreData:
        self._loaded_from_disk = False
        if self.storage_path is None or not self.storage_path.exists():
            return StoreData()
        try:
            with open(self.storage_path) as f:
                data = StoreData(**json.load(f))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load conversations from {self.storage_path}: {e}")
            return StoreData()
        self._loaded_from_disk = True
        logger.info(f"Loaded {len(data.conversations)} conversations from {self.storage_path}")
        return data

    def _save(self) -> None:
        if self.storage_path is None:
            return
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.storage_path.with_name(self.storage_path.name + ".tmp")
        with open(temp_path, "w") as f:
            f.write(self._data.model_dump_json(indent=2))
        os.replace(temp_path, self.storage_path)

    # Conversations

    def list_conversations(self) -> list[Conversation]:
        with self._lock:
            return sorted(self._data.conversations, key=lambda c: c.updated_at, reverse=True)

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._lock:
            return next((c for c in self._data.conversations if c.id == conversation_id), None)

    def create_conversation(self, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(title=title) if title else Conversation()
        with self._lock:
            self._data.conversations.append(conversation)
            self._data.messages[conversation.id] = []
            self._save()
        return conversation

    def update_conversation_title(self, conversation_id: str, title: str) -> None:
        with self._lock:
            conversation = self.get_conversation(conversation_id)
            if conversation is None:
                return
            conversation.title = title
            conversation.updated_at = time.time()
            self._save()

    def delete_conversation(self, conversation_id: str) -> None:
        with self._lock:
            self._data.conversations = [c for c in self._data.conversations if c.id != conversation_id]
            self._data.messages.pop(conversation_id, None)
            self._save()

    # Messages

    def get_messages(self, conversation_id: str) -> list[Message]:
        with self._lock:
            return list(self._data.messages.get(conversation_id, []))

    def add_message(self, message: Message) -> Message:
        with self._lock:
            messages = self._data.messages.setdefault(message.conversation_id, [])
            messages.append(message)
            conversation = self.get_conversation(message.conversation_id)
            if conversation is not None:
                conversation.updated_at = time.time()
                conversation.message_count = len(messages)
            self._save()
        return message

    def get_rolling_context(self, conversation_id: str, max_tokens: int) -> list[Message]:
        return trim_to_budget(self.get_messages(conversation_id), max_tokens)

    # Settings

    def get_settings(self) -> ChatSettings:
        with self._lock:
            return self._data.settings.model_copy(deep=True)

    def update_settings(self, **partial: Any) -> ChatSettings:
        with self._lock:
            merged = {**self._data.settings.model_dump(), **{k: v for k, v in partial.items() if v is not None}}
            self._data.settings = ChatSettings(**merged)
            self._save()
            return self.get_settings()
