"""Chat messages and the stores that own them."""

from .message_model import ChatMessage
from .store import InMemoryChatStore, JsonChatStore, MessageStore

__all__ = ["ChatMessage", "InMemoryChatStore", "JsonChatStore", "MessageStore"]
