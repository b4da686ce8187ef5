import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from .models import Product, IntentFilters, ProductFilters, SyncResult, utcnow
from .store import KeyedStore
from .storefront_client import StorefrontClient

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50


class CatalogCache:
    """Per-tenant product cache filled by storefront syncs.

    Every tenant gets its own store namespace, so a query can only ever see
    the calling tenant's products.
    """

    def __init__(self, store: KeyedStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def _namespace(self, tenant: str) -> str:
        return f"products:{tenant}"

    # ---------------------------------------------------------
    # WRITE PATH
    # ---------------------------------------------------------
    def upsert(self, tenant: str, product: Product) -> bool:
        try:
            synced = product.model_copy(update={"last_synced": self.clock()})
            self.store.put(self._namespace(tenant), synced.id, synced)
            return True
        except Exception:
            logger.exception(f"Failed to cache product {product.id} for {tenant}")
            return False

    def sync_all(self, tenant: str, source: StorefrontClient) -> SyncResult:
        logger.info(f"Starting product sync for {tenant}...")
        products = source.fetch_all_products()
        logger.info(f"Fetched {len(products)} products for {tenant}")

        synced = 0
        for product in products:
            if self.upsert(tenant, product):
                synced += 1

        removed = self._sweep(tenant, {p.id for p in products})
        logger.info(f"Synced {synced}/{len(products)} products for {tenant} ({removed} removed)")
        return SyncResult(shop=tenant, total_synced=synced, fetched=len(products), removed=removed)

    def _sweep(self, tenant: str, seen_ids: set) -> int:
        """Drop cached products that the upstream catalog no longer lists."""
        namespace = self._namespace(tenant)
        removed = 0
        for product_id in self.store.keys(namespace):
            if product_id not in seen_ids and self.store.delete(namespace, product_id):
                removed += 1
        return removed

    def scheduled_sync(self, tenant: str, source: StorefrontClient, max_age_hours: float = 24) -> SyncResult:
        if self.needs_sync(tenant, max_age_hours):
            logger.info(f"Scheduled sync triggered for {tenant}")
            return self.sync_all(tenant, source)
        logger.info(f"Sync not needed for {tenant}, last sync was recent")
        return SyncResult(shop=tenant, skipped=True)

    def needs_sync(self, tenant: str, max_age_hours: float = 24) -> bool:
        latest = self._latest_sync(tenant)
        if latest is None:
            return True
        return self.clock() - latest > timedelta(hours=max_age_hours)

    def _latest_sync(self, tenant: str) -> Optional[datetime]:
        stamps = [p.last_synced for p in self.store.values(self._namespace(tenant)) if p.last_synced]
        return max(stamps) if stamps else None

    # ---------------------------------------------------------
    # READ PATH
    # ---------------------------------------------------------
    def get(self, tenant: str, product_id: str) -> Optional[Product]:
        return self.store.get(self._namespace(tenant), product_id)

    def count(self, tenant: str) -> int:
        return self.store.count(self._namespace(tenant))

    def list(self, tenant: str, limit: int = 100) -> List[Product]:
        products = self.store.values(self._namespace(tenant))
        # sort is stable, so ties keep store order
        products.sort(key=lambda p: p.last_synced.timestamp() if p.last_synced else 0.0, reverse=True)
        return products[:max(limit, 0)]

    def search(self, tenant: str, query: str) -> List[Product]:
        needle = (query or "").strip().lower()
        if not needle:
            return []

        def matches(p: Product) -> bool:
            fields = [p.title, p.description, p.vendor, p.product_type] + list(p.tags)
            return any(needle in (f or "").lower() for f in fields)

        results = self.store.values(self._namespace(tenant), where=matches)
        results.sort(key=lambda p: p.title)
        return results[:SEARCH_LIMIT]

    def recommend(self, tenant: str, product_id: str, limit: int = 5) -> List[Product]:
        """Same product type or shares the source's first tag.

        A heuristic: results come back in store order, not ranked.
        """
        source = self.get(tenant, product_id)
        if source is None or limit <= 0:
            return []
        first_tag = source.tags[0].lower() if source.tags else None

        def similar(p: Product) -> bool:
            if p.id == source.id:
                return False
            if source.product_type and p.product_type == source.product_type:
                return True
            return bool(first_tag) and any(first_tag in t.lower() for t in p.tags)

        return self.store.values(self._namespace(tenant), where=similar)[:limit]

    # ---------------------------------------------------------
    # FILTERS
    # ---------------------------------------------------------
    @staticmethod
    def filter_products(products: List[Product], filters: IntentFilters) -> List[Product]:
        if not isinstance(filters, ProductFilters):
            filters = ProductFilters(**filters.model_dump())

        def option_values(p: Product, name: str) -> List[str]:
            return [
                value.lower()
                for v in p.variants
                for key, value in v.options.items()
                if key.lower() == name
            ]

        kept = []
        for p in products:
            if filters.max_price is not None and p.price_amount > filters.max_price:
                continue
            if filters.min_price is not None and p.price_amount < filters.min_price:
                continue
            if filters.color and not any(filters.color.lower() in v for v in option_values(p, "color")):
                continue
            if filters.size and filters.size.lower() not in option_values(p, "size"):
                continue
            if filters.available is not None and p.available != filters.available:
                continue
            if filters.product_type and p.product_type != filters.product_type:
                continue
            if filters.vendor and p.vendor != filters.vendor:
                continue
            if filters.tag and filters.tag not in p.tags:
                continue
            kept.append(p)
        return kept
