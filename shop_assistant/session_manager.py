import logging
import uuid
from typing import Dict, List, Optional
from .errors import NotFoundError
from .models import Conversation, Message
from .store import KeyedStore

logger = logging.getLogger(__name__)


class ConversationStore:
    NAMESPACE = "conversations"

    def __init__(self, store: KeyedStore):
        self.store = store

    def create(self, tenant: str, session_id: Optional[str] = None,
               welcome_message: Optional[str] = None) -> Conversation:
        conversation = Conversation(
            id=str(uuid.uuid4()),
            tenant=tenant,
            session_id=session_id or f"session_{uuid.uuid4().hex[:12]}",
        )
        if welcome_message:
            conversation.messages.append(self._message(conversation.id, "system", welcome_message))
        self.store.put(self.NAMESPACE, conversation.id, conversation)
        logger.info(f"Created conversation {conversation.id} for {tenant}")
        return conversation

    def get(self, tenant: str, conversation_id: str) -> Conversation:
        conversation = self.store.get(self.NAMESPACE, conversation_id) if conversation_id else None
        # a foreign tenant's conversation is reported exactly like a missing one
        if conversation is None or conversation.tenant != tenant:
            raise NotFoundError("Conversation not found")
        return conversation

    def get_or_create(self, tenant: str, conversation_id: Optional[str] = None,
                      session_id: Optional[str] = None,
                      welcome_message: Optional[str] = None) -> Conversation:
        if conversation_id:
            try:
                return self.get(tenant, conversation_id)
            except NotFoundError:
                logger.info(f"Conversation {conversation_id} not found for {tenant}, starting a new one")
        return self.create(tenant, session_id, welcome_message)

    def _message(self, conversation_id: str, role: str, content: str) -> Message:
        return Message(id=uuid.uuid4().hex, conversation_id=conversation_id, role=role, content=content)

    def append_message(self, conversation_id: str, role: str, content: str) -> Message:
        message = self._message(conversation_id, role, content)

        def apply(conversation: Conversation) -> Conversation:
            conversation.messages.append(message)
            return conversation

        if self.store.update(self.NAMESPACE, conversation_id, apply) is None:
            raise NotFoundError("Conversation not found")
        return message

    def history(self, conversation_id: str, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Chronological role/content pairs, optionally only the last ``limit``."""
        conversation = self.store.get(self.NAMESPACE, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        messages = conversation.messages[-limit:] if limit else conversation.messages
        return [{"role": m.role, "content": m.content} for m in messages]

    def remember(self, conversation_id: str, key: str, value: str):
        """Remembers things like a preferred color or size."""
        def apply(conversation: Conversation) -> Conversation:
            conversation.attributes[key] = value
            return conversation
        self.store.update(self.NAMESPACE, conversation_id, apply)

    def interests(self, conversation_id: str) -> Optional[str]:
        conversation = self.store.get(self.NAMESPACE, conversation_id)
        if not conversation or not conversation.attributes:
            return None
        return ", ".join(f"{k}: {v}" for k, v in conversation.attributes.items())

    def for_tenant(self, tenant: str) -> List[Conversation]:
        return self.store.values(self.NAMESPACE, where=lambda c: c.tenant == tenant)
