import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Callable, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()

from .analytics import AnalyticsRecorder
from .cart_ledger import CartLedger
from .catalog_cache import CatalogCache
from .errors import AuthError, NotFoundError, UpstreamError, ValidationError
from .llm_gateway import ChatProvider, build_provider
from .logging_config import setup_logging
from .models import CartRequest, ChatRequest, ChatResponse, ErrorResponse, ProductFilters, SyncRequest, TenantConfig
from .orchestrator import AssistantOrchestrator
from .session_manager import ConversationStore
from .store import KeyedStore
from .storefront_client import StorefrontClient
from .tenants import TenantRegistry

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-SDK-API-Key"


def _default_source(tenant: TenantConfig) -> StorefrontClient:
    return StorefrontClient(tenant.shop, tenant.storefront_access_token)


class Services:
    """Everything a request needs, built around one explicitly passed store."""

    def __init__(
        self,
        store: KeyedStore,
        tenants: TenantRegistry,
        provider_factory: Callable[[TenantConfig], ChatProvider] = build_provider,
        source_factory: Callable[[TenantConfig], StorefrontClient] = _default_source,
    ):
        self.store = store
        self.tenants = tenants
        self.catalog = CatalogCache(store)
        self.cart = CartLedger(store, self.catalog)
        self.conversations = ConversationStore(store)
        self.analytics = AnalyticsRecorder(store)
        self.provider_factory = provider_factory
        self.source_factory = source_factory
        self._orchestrators: Dict[str, AssistantOrchestrator] = {}

    def orchestrator_for(self, tenant: TenantConfig) -> AssistantOrchestrator:
        if tenant.shop not in self._orchestrators:
            self._orchestrators[tenant.shop] = AssistantOrchestrator(
                tenant=tenant,
                provider=self.provider_factory(tenant),
                catalog=self.catalog,
                cart=self.cart,
                conversations=self.conversations,
                analytics=self.analytics,
            )
        return self._orchestrators[tenant.shop]

    def source_for(self, tenant: TenantConfig) -> StorefrontClient:
        if not tenant.storefront_access_token:
            raise ValidationError("Storefront API not configured")
        return self.source_factory(tenant)


# ---------------------------------------------------------
# DEPENDENCIES
# ---------------------------------------------------------
def get_services(request: Request) -> Services:
    return request.app.state.services

def require_tenant(
    request: Request,
    api_key: Optional[str] = Header(None, alias=API_KEY_HEADER),
) -> TenantConfig:
    return get_services(request).tenants.authenticate(api_key)


router = APIRouter()

@router.get("/health")
def health():
    return {"status": "ok"}

@router.post("/chat", response_model=ChatResponse)
def chat(
    request: ChatRequest,
    tenant: TenantConfig = Depends(require_tenant),
    services: Services = Depends(get_services),
):
    orchestrator = services.orchestrator_for(tenant)
    turn = orchestrator.handle_message(
        request.message,
        conversation_id=request.conversationId,
        session_id=request.sessionId,
        timeout=tenant.llm_timeout,
    )
    return ChatResponse(
        conversationId=turn.conversation_id,
        message=turn.reply,
        intent=turn.intent,
        cart=turn.cart,
    )

@router.post("/cart")
def cart(
    request: CartRequest,
    tenant: TenantConfig = Depends(require_tenant),
    services: Services = Depends(get_services),
):
    conversation = services.conversations.get(tenant.shop, request.conversationId)
    ledger = services.cart

    if request.action == "add":
        if not (request.productId and request.variantId):
            raise ValidationError("productId and variantId are required")
        item = ledger.add(tenant.shop, conversation.id, request.productId, request.variantId, request.quantity)
        services.analytics.record_cart_add(tenant.shop, conversation.id)
        return {"success": True, "cartItem": item, "message": f"Added {item.title} to cart"}

    if request.action == "remove":
        if not request.cartItemId:
            raise ValidationError("cartItemId is required")
        removed = ledger.remove(conversation.id, request.cartItemId)
        return {"success": True, "removed": removed, "message": "Item removed from cart"}

    if request.action == "update":
        if not request.cartItemId:
            raise ValidationError("cartItemId is required")
        item = ledger.update_quantity(conversation.id, request.cartItemId, request.newQuantity)
        return {"success": True, "cartItem": item}

    if request.action == "get":
        items = ledger.list(conversation.id)
        return {"items": items, "total": str(ledger.total(conversation.id)), "itemCount": len(items)}

    if request.action == "checkout":
        session = ledger.checkout(conversation.id, services.source_for(tenant))
        services.analytics.record_checkout(tenant.shop, conversation.id)
        return {"success": True, "checkoutUrl": session.checkout_url, "cartId": session.id}

    raise ValidationError("Invalid action")

@router.get("/products")
def products(
    q: Optional[str] = None,
    product_id: Optional[str] = Query(None, alias="id"),
    limit: int = 20,
    minPrice: Optional[Decimal] = None,
    maxPrice: Optional[Decimal] = None,
    color: Optional[str] = None,
    size: Optional[str] = None,
    available: Optional[bool] = None,
    productType: Optional[str] = None,
    vendor: Optional[str] = None,
    tag: Optional[str] = None,
    live: bool = False,
    tenant: TenantConfig = Depends(require_tenant),
    services: Services = Depends(get_services),
):
    catalog = services.catalog

    if product_id:
        product = catalog.get(tenant.shop, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        return {"product": product, "recommendations": catalog.recommend(tenant.shop, product_id, 5)}

    filters = ProductFilters(
        min_price=minPrice, max_price=maxPrice, color=color, size=size,
        available=available, product_type=productType, vendor=vendor, tag=tag,
    )
    if q:
        # live=true asks the storefront directly instead of the synced cache
        if live:
            candidates = services.source_for(tenant).search_products(q, limit)
        else:
            candidates = catalog.search(tenant.shop, q)
        found = catalog.filter_products(candidates, filters)
        return {"products": found, "total": len(found), "query": q}

    listed = catalog.filter_products(catalog.list(tenant.shop, limit), filters)
    return {"products": listed, "total": len(listed)}

@router.post("/sync")
def sync(
    request: Optional[SyncRequest] = None,
    tenant: TenantConfig = Depends(require_tenant),
    services: Services = Depends(get_services),
):
    source = services.source_for(tenant)
    if request and request.force:
        result = services.catalog.sync_all(tenant.shop, source)
    else:
        result = services.catalog.scheduled_sync(tenant.shop, source)
    return {
        "success": True,
        "totalSynced": result.total_synced,
        "fetched": result.fetched,
        "removed": result.removed,
        "skipped": result.skipped,
    }

@router.get("/collections")
def collections(
    limit: int = 50,
    tenant: TenantConfig = Depends(require_tenant),
    services: Services = Depends(get_services),
):
    found = services.source_for(tenant).get_collections(limit)
    return {"collections": found, "total": len(found)}

@router.get("/analytics")
def analytics(
    tenant: TenantConfig = Depends(require_tenant),
    services: Services = Depends(get_services),
):
    return services.analytics.summary(tenant.shop)


# ---------------------------------------------------------
# ERROR MAPPING
# ---------------------------------------------------------
def _error(status: int, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=message, details=details or None)
    return JSONResponse(status_code=status, content=body.model_dump(exclude_none=True))

def _request_errors(exc: RequestValidationError):
    details = []
    for err in exc.errors():
        # drop the "body"/"query" prefix so the field reads like the request
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        details.append({"field": field, "message": err.get("msg", "")})
    return details

def register_error_handlers(app: FastAPI):
    @app.exception_handler(RequestValidationError)
    async def _malformed(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request", _request_errors(exc))

    @app.exception_handler(AuthError)
    async def _auth(request: Request, exc: AuthError):
        return _error(401, "Invalid or disabled API key")

    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(UpstreamError)
    async def _upstream(request: Request, exc: UpstreamError):
        logger.error(f"Upstream failure on {request.url.path}: {exc}")
        return _error(500, "Upstream service error", exc.details)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return _error(500, "Internal server error")


def create_app(
    store: Optional[KeyedStore] = None,
    tenants: Optional[TenantRegistry] = None,
    provider_factory: Callable[[TenantConfig], ChatProvider] = build_provider,
    source_factory: Callable[[TenantConfig], StorefrontClient] = _default_source,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        logger.info("Application startup: Logging initialized")
        yield
        logger.info("Application shutdown")

    app = FastAPI(title="Shop Assistant API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = Services(
        store=store or KeyedStore(),
        tenants=tenants if tenants is not None else TenantRegistry.from_env(),
        provider_factory=provider_factory,
        source_factory=source_factory,
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()
