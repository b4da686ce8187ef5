import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import List
from .catalog_cache import CatalogCache
from .errors import NotFoundError, ValidationError
from .models import CartItem, CheckoutSession
from .store import KeyedStore
from .storefront_client import StorefrontClient

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class CartLedger:
    """Line items per conversation. Prices are snapshotted when an item is
    added and never re-read from the catalog afterwards."""

    NAMESPACE = "cart_items"

    def __init__(self, store: KeyedStore, catalog: CatalogCache):
        self.store = store
        self.catalog = catalog

    def add(self, tenant: str, conversation_id: str, product_id: str, variant_id: str,
            quantity: int = 1) -> CartItem:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = self.catalog.get(tenant, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        variant = product.find_variant(variant_id)
        if variant is None:
            raise NotFoundError("Variant not found")

        item = CartItem(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            product_id=product.id,
            variant_id=variant.id,
            quantity=quantity,
            price=variant.price_amount,
            title=f"{product.title} - {variant.title}" if variant.title else product.title,
            image_url=product.images[0].url if product.images else None,
        )
        self.store.put(self.NAMESPACE, item.id, item)
        logger.info(f"Added {quantity} x {variant.id} to cart {conversation_id}")
        return item

    def remove(self, conversation_id: str, cart_item_id: str) -> bool:
        """Idempotent: removing an item that is already gone returns False."""
        item = self.store.get(self.NAMESPACE, cart_item_id)
        if item is None or item.conversation_id != conversation_id:
            return False
        return self.store.delete(self.NAMESPACE, cart_item_id)

    def update_quantity(self, conversation_id: str, cart_item_id: str, new_quantity: int) -> CartItem:
        if new_quantity is None or new_quantity < 1:
            raise ValidationError("Quantity must be at least 1; remove the item instead")

        def apply(item: CartItem) -> CartItem:
            if item.conversation_id != conversation_id:
                raise NotFoundError("Cart item not found")
            return item.model_copy(update={"quantity": new_quantity})

        updated = self.store.update(self.NAMESPACE, cart_item_id, apply)
        if updated is None:
            raise NotFoundError("Cart item not found")
        return updated

    def list(self, conversation_id: str) -> List[CartItem]:
        return self.store.values(self.NAMESPACE, where=lambda i: i.conversation_id == conversation_id)

    def total(self, conversation_id: str) -> Decimal:
        raw = sum((i.price * i.quantity for i in self.list(conversation_id)), Decimal("0"))
        return raw.quantize(CENTS, rounding=ROUND_HALF_UP)

    def checkout(self, conversation_id: str, source: StorefrontClient) -> CheckoutSession:
        items = self.list(conversation_id)
        if not items:
            raise ValidationError("Cart is empty")
        session = source.create_cart(
            [{"variant_id": i.variant_id, "quantity": i.quantity} for i in items]
        )
        logger.info(f"Checkout created for {conversation_id}: {session.id}")
        return session
