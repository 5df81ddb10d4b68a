"""Chat history cache: the last 40 messages, of which the last 12 feed the coach."""
import json
import uuid
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from .models import CamelModel, ConversationTurn, Role, Source
from .storage import KeyValueStore, StorageError


AI_COACH_HISTORY_KEY = "ai-coach-history-v1"
MAX_MESSAGES = 40
PROMPT_TURNS = 12


class ChatMessage(CamelModel):
    id: str
    role: Role
    text: str
    source: Optional[Source] = None


def new_message(role: str, text: str, source: Optional[str] = None) -> ChatMessage:
    return ChatMessage(id=uuid.uuid4().hex[:12], role=role, text=text.strip(), source=source)


def _parse_messages(items: Any) -> list[ChatMessage]:
    if not isinstance(items, list):
        return []
    messages = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            messages.append(ChatMessage.model_validate(item))
        except ValidationError:
            continue
    return messages[-MAX_MESSAGES:]


def load_history(store: KeyValueStore) -> list[ChatMessage]:
    """Stored messages, dropping anything malformed. Never raises."""
    try:
        raw = store.get_item(AI_COACH_HISTORY_KEY)
        if not raw:
            return []
        return _parse_messages(json.loads(raw))
    except (StorageError, ValueError) as e:
        logger.warning(f"Ignoring unreadable chat history: {e}")
        return []


def save_history(store: KeyValueStore, messages: list[ChatMessage]) -> bool:
    payload = [m.model_dump(exclude_none=True) for m in messages[-MAX_MESSAGES:]]
    try:
        store.set_item(AI_COACH_HISTORY_KEY, json.dumps(payload, ensure_ascii=False))
        return True
    except StorageError as e:
        logger.warning(f"Could not save chat history: {e}")
        return False


def clear_history(store: KeyValueStore) -> None:
    try:
        store.remove_item(AI_COACH_HISTORY_KEY)
    except StorageError as e:
        logger.warning(f"Could not clear chat history: {e}")


def append_message(messages: list[ChatMessage], message: ChatMessage) -> list[ChatMessage]:
    return (list(messages) + [message])[-MAX_MESSAGES:]


def prompt_history(messages: list[ChatMessage]) -> list[ConversationTurn]:
    """The sliding window of turns handed to the classifier and the relay."""
    turns = []
    for message in messages[-PROMPT_TURNS:]:
        if message.text.strip():
            turns.append(ConversationTurn(role=message.role, text=message.text))
    return turns
