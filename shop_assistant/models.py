from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    """Anything the widget sees: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------
# CATALOG
# ---------------------------------------------------------
class ProductImage(ApiModel):
    url: str
    alt_text: Optional[str] = None

class ProductVariant(ApiModel):
    id: str
    title: str = ""
    available: bool = False
    quantity_available: Optional[int] = Field(default=None, ge=0)
    price_amount: Decimal = Decimal("0")
    compare_at_price: Optional[Decimal] = None
    options: Dict[str, str] = {}
    image: Optional[ProductImage] = None

class Product(ApiModel):
    id: str
    title: str
    description: str = ""
    vendor: str = ""
    product_type: str = ""
    tags: List[str] = []
    images: List[ProductImage] = []
    variants: List[ProductVariant] = []
    price_amount: Decimal = Decimal("0")
    currency_code: str = "USD"
    compare_at_price: Optional[Decimal] = None
    available: bool = False
    last_synced: Optional[datetime] = None

    def find_variant(self, variant_id: str) -> Optional[ProductVariant]:
        return next((v for v in self.variants if v.id == variant_id), None)

class CollectionProduct(ApiModel):
    id: str
    title: str = ""

class Collection(ApiModel):
    id: str
    title: str
    description: str = ""
    handle: str = ""
    image: Optional[ProductImage] = None
    products: List[CollectionProduct] = []

class SyncResult(BaseModel):
    shop: str
    total_synced: int = 0
    fetched: int = 0
    removed: int = 0
    skipped: bool = False


# ---------------------------------------------------------
# CONVERSATION & CART
# ---------------------------------------------------------
class Message(BaseModel):
    id: str
    conversation_id: str
    role: Literal["system", "user", "assistant"]
    content: str
    created_at: datetime = Field(default_factory=utcnow)

class Conversation(BaseModel):
    id: str
    tenant: str
    session_id: str
    created_at: datetime = Field(default_factory=utcnow)
    messages: List[Message] = []
    # Remembered shopper interests, e.g. {"color": "red"}
    attributes: Dict[str, str] = {}

class CartItem(ApiModel):
    id: str
    conversation_id: str
    product_id: str
    variant_id: str
    quantity: int = Field(ge=1)
    price: Decimal
    title: str
    image_url: Optional[str] = None

class CheckoutSession(ApiModel):
    id: str
    checkout_url: str

class ChatAnalytics(BaseModel):
    conversation_id: str
    tenant: str
    message_count: int = 0
    products_added_cart: int = 0
    checkout_initiated: bool = False


# ---------------------------------------------------------
# INTENT
# ---------------------------------------------------------
IntentAction = Literal["search", "add_to_cart", "remove_from_cart", "checkout", "compare", "none"]

class IntentFilters(ApiModel):
    max_price: Optional[Decimal] = None
    min_price: Optional[Decimal] = None
    color: Optional[str] = None
    size: Optional[str] = None

    @field_serializer("max_price", "min_price", when_used="json-unless-none")
    def _price_as_number(self, value: Decimal):
        return int(value) if value == value.to_integral_value() else float(value)

class ProductFilters(IntentFilters):
    """Intent filters plus the catalog-only criteria of the products endpoint."""
    available: Optional[bool] = None
    product_type: Optional[str] = None
    vendor: Optional[str] = None
    tag: Optional[str] = None

class Intent(ApiModel):
    action: IntentAction = "none"
    quantity: int = 1
    filters: IntentFilters = Field(default_factory=IntentFilters)


# ---------------------------------------------------------
# TENANT
# ---------------------------------------------------------
class TenantConfig(BaseModel):
    shop: str
    api_key: str
    enabled: bool = True
    shop_name: Optional[str] = None
    storefront_access_token: Optional[str] = None
    llm_provider: str = "groq"
    llm_model: Optional[str] = None
    llm_api_key: Optional[str] = None
    max_tokens: int = 500
    temperature: float = 0.7
    # Seconds; None leaves the provider SDK's own default in place
    llm_timeout: Optional[float] = Field(default=None, gt=0)
    custom_prompt: str = ""
    welcome_message: Optional[str] = None
    history_window: int = Field(default=20, ge=1)

    @property
    def display_name(self) -> str:
        return self.shop_name or self.shop


# ---------------------------------------------------------
# LLM
# ---------------------------------------------------------
class Completion(BaseModel):
    content: str
    tokens_used: int = 0

class PromptPayload(BaseModel):
    system_prompt: str
    messages: List[Dict[str, str]]

class ChatTurn(BaseModel):
    conversation_id: str
    reply: str
    intent: Intent
    cart: List[CartItem]
    tokens_used: int = 0


# ---------------------------------------------------------
# HTTP SCHEMAS
# ---------------------------------------------------------
class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    conversationId: Optional[str] = None
    sessionId: Optional[str] = None

class ChatResponse(BaseModel):
    conversationId: str
    message: str
    intent: Intent
    cart: List[CartItem] = []
    suggestions: List[str] = []

class CartRequest(BaseModel):
    action: str
    conversationId: str
    productId: Optional[str] = None
    variantId: Optional[str] = None
    quantity: int = 1
    cartItemId: Optional[str] = None
    newQuantity: Optional[int] = None

class SyncRequest(BaseModel):
    force: bool = False

class ErrorResponse(BaseModel):
    error: str
    details: Optional[List[Dict[str, Any]]] = None
