import logging
from typing import Optional
from .analytics import AnalyticsRecorder
from .cart_ledger import CartLedger
from .catalog_cache import CatalogCache
from .context_assembler import ContextAssembler
from .errors import AuthError, UpstreamError
from .intent import IntentExtractor
from .llm_gateway import ChatProvider
from .models import ChatTurn, Intent, TenantConfig
from .session_manager import ConversationStore

logger = logging.getLogger(__name__)

# More than the prompt shows; the assembler truncates to its own cap
CATALOG_SNAPSHOT_SIZE = 100


class AssistantOrchestrator:
    """Runs one chat turn for one tenant.

    The extracted intent is returned to the caller but never acted on here:
    cart changes only happen through explicit cart actions.
    """

    def __init__(
        self,
        tenant: TenantConfig,
        provider: ChatProvider,
        catalog: CatalogCache,
        cart: CartLedger,
        conversations: ConversationStore,
        analytics: Optional[AnalyticsRecorder] = None,
        assembler: Optional[ContextAssembler] = None,
    ):
        self.tenant = tenant
        self.provider = provider
        self.catalog = catalog
        self.cart = cart
        self.conversations = conversations
        self.analytics = analytics
        self.assembler = assembler or ContextAssembler()

    def handle_message(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        session_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ChatTurn:
        tenant = self.tenant

        # 1. Tenant gate, re-checked here because this is where model budget is spent
        if not tenant.enabled:
            raise AuthError("Invalid or disabled API key")

        # 2. Conversation + user message
        conversation = self.conversations.get_or_create(
            tenant.shop, conversation_id, session_id, tenant.welcome_message
        )
        self.conversations.append_message(conversation.id, "user", message)

        # 3. Intent (informational only)
        intent = IntentExtractor.extract(message)
        self._remember_interests(conversation.id, intent)

        # 4. Context
        cart_items = self.cart.list(conversation.id)
        payload = self.assembler.build(
            shop_name=tenant.display_name,
            products=self.catalog.list(tenant.shop, limit=CATALOG_SNAPSHOT_SIZE),
            cart_items=cart_items,
            history=self.conversations.history(conversation.id, limit=tenant.history_window),
            previous_interests=self.conversations.interests(conversation.id),
            custom_instructions=tenant.custom_prompt,
        )

        # 5. Model call. Nothing is written for the assistant unless this succeeds.
        try:
            completion = self.provider.generate(
                payload.system_prompt,
                payload.messages,
                max_tokens=tenant.max_tokens,
                temperature=tenant.temperature,
                timeout=timeout,
            )
        except UpstreamError:
            logger.error(f"Model call failed for conversation {conversation.id}")
            raise
        except Exception as e:
            logger.exception(f"Model call failed for conversation {conversation.id}")
            raise UpstreamError("Language model request failed") from e

        # 6. Persist reply
        self.conversations.append_message(conversation.id, "assistant", completion.content)
        if self.analytics:
            self.analytics.record_turn(tenant.shop, conversation.id)

        logger.info(f"Turn complete for {conversation.id}: action={intent.action}, tokens={completion.tokens_used}")
        return ChatTurn(
            conversation_id=conversation.id,
            reply=completion.content,
            intent=intent,
            cart=cart_items,
            tokens_used=completion.tokens_used,
        )

    def _remember_interests(self, conversation_id: str, intent: Intent):
        filters = intent.filters
        for key, value in (("color", filters.color), ("size", filters.size), ("max_price", filters.max_price)):
            if value is not None:
                self.conversations.remember(conversation_id, key, str(value))
