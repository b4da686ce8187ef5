from typing import Dict, Optional
from .models import ChatAnalytics
from .store import KeyedStore


class AnalyticsRecorder:
    """Per-conversation engagement counters."""

    NAMESPACE = "chat_analytics"

    def __init__(self, store: KeyedStore):
        self.store = store

    def _bump(self, tenant: str, conversation_id: str, **changes) -> ChatAnalytics:
        def apply(row: ChatAnalytics) -> ChatAnalytics:
            row.message_count += changes.get("messages", 0)
            row.products_added_cart += changes.get("cart_adds", 0)
            if changes.get("checkout"):
                row.checkout_initiated = True
            return row

        return self.store.upsert(
            self.NAMESPACE,
            conversation_id,
            lambda: ChatAnalytics(conversation_id=conversation_id, tenant=tenant),
            apply,
        )

    def record_turn(self, tenant: str, conversation_id: str) -> ChatAnalytics:
        # user + assistant
        return self._bump(tenant, conversation_id, messages=2)

    def record_cart_add(self, tenant: str, conversation_id: str) -> ChatAnalytics:
        return self._bump(tenant, conversation_id, cart_adds=1)

    def record_checkout(self, tenant: str, conversation_id: str) -> ChatAnalytics:
        return self._bump(tenant, conversation_id, checkout=True)

    def get(self, conversation_id: str) -> Optional[ChatAnalytics]:
        return self.store.get(self.NAMESPACE, conversation_id)

    def summary(self, tenant: str) -> Dict[str, int]:
        rows = self.store.values(self.NAMESPACE, where=lambda r: r.tenant == tenant)
        return {
            "conversations": len(rows),
            "messages": sum(r.message_count for r in rows),
            "productsAddedCart": sum(r.products_added_cart for r in rows),
            "checkouts": sum(1 for r in rows if r.checkout_initiated),
        }
