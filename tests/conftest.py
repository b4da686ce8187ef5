# tests/conftest.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from shop_assistant.analytics import AnalyticsRecorder
from shop_assistant.cart_ledger import CartLedger
from shop_assistant.catalog_cache import CatalogCache
from shop_assistant.errors import UpstreamError
from shop_assistant.llm_gateway import ChatProvider
from shop_assistant.models import Collection, Completion, Product, ProductImage, ProductVariant, TenantConfig, CheckoutSession
from shop_assistant.session_manager import ConversationStore
from shop_assistant.store import KeyedStore

SHOP = "acme.myshopify.com"


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Stands in for requests.Session; replays queued responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeProvider(ChatProvider):
    name = "fake"

    def __init__(self, reply="Happy to help!", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def generate(self, system_prompt, messages, max_tokens=500, temperature=0.7, timeout=None):
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "timeout": timeout,
        })
        if self.error:
            raise self.error
        return Completion(content=self.reply, tokens_used=42)


class FakeSource:
    """Catalog source with canned products and a recorded checkout."""

    def __init__(self, products=(), error=None):
        self.products = list(products)
        self.error = error
        self.carts = []
        self.searches = []

    def fetch_all_products(self):
        if self.error:
            raise self.error
        return list(self.products)

    def create_cart(self, line_items):
        self.carts.append(line_items)
        return CheckoutSession(id="gid://shopify/Cart/1", checkout_url="https://acme.test/cart/c/1")

    def search_products(self, query, limit=20):
        self.searches.append((query, limit))
        return [p for p in self.products if query.lower() in p.title.lower()][:limit]

    def get_collections(self, limit=50):
        return [Collection(id="gid://shopify/Collection/1", title="Summer", handle="summer")][:limit]


def make_product(pid="1", title="Classic Tee", price="19.99", **overrides) -> Product:
    data = dict(
        id=f"gid://shopify/Product/{pid}",
        title=title,
        description=f"{title} description",
        vendor="Acme",
        product_type="Shirts",
        tags=["cotton"],
        images=[ProductImage(url=f"https://cdn.test/{pid}.jpg", alt_text=title)],
        variants=[
            ProductVariant(
                id=f"gid://shopify/ProductVariant/{pid}1",
                title="Red / M",
                available=True,
                quantity_available=5,
                price_amount=Decimal(price),
                options={"Color": "Red", "Size": "M"},
            )
        ],
        price_amount=Decimal(price),
        currency_code="USD",
        available=True,
    )
    data.update(overrides)
    return Product(**data)


@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def store():
    return KeyedStore()

@pytest.fixture
def catalog(store, clock):
    return CatalogCache(store, clock=clock)

@pytest.fixture
def ledger(store, catalog):
    return CartLedger(store, catalog)

@pytest.fixture
def conversations(store):
    return ConversationStore(store)

@pytest.fixture
def analytics(store):
    return AnalyticsRecorder(store)

@pytest.fixture
def tenant():
    return TenantConfig(
        shop=SHOP,
        api_key="sdk_test_key",
        shop_name="Acme Outfitters",
        storefront_access_token="storefront-token",
        welcome_message="Hi! How can I help you shop today?",
        history_window=20,
    )

@pytest.fixture
def upstream_error():
    return UpstreamError("Language model request failed")
