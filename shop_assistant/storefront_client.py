import logging
import os
import requests
from decimal import Decimal, InvalidOperation
from typing import List, Dict, Optional, Any
from .errors import UpstreamError
from .models import Product, ProductVariant, ProductImage, CheckoutSession, Collection, CollectionProduct

logger = logging.getLogger(__name__)

API_VERSION = "2024-01"
MAX_PAGE_SIZE = 250

_PRODUCT_FIELDS = """
    id
    title
    description
    descriptionHtml
    vendor
    productType
    tags
    availableForSale
    priceRange {
      minVariantPrice { amount currencyCode }
    }
    compareAtPriceRange {
      minVariantPrice { amount currencyCode }
    }
    images(first: 10) {
      edges { node { url altText } }
    }
    variants(first: 50) {
      edges {
        node {
          id
          title
          availableForSale
          quantityAvailable
          priceV2 { amount currencyCode }
          compareAtPriceV2 { amount currencyCode }
          selectedOptions { name value }
          image { url altText }
        }
      }
    }
"""

PRODUCTS_QUERY = """
query GetProducts($first: Int!, $after: String) {
  products(first: $first, after: $after) {
    pageInfo { hasNextPage endCursor }
    edges { node { %s } }
  }
}
""" % _PRODUCT_FIELDS

PRODUCT_QUERY = """
query GetProduct($id: ID!) {
  product(id: $id) { %s }
}
""" % _PRODUCT_FIELDS

SEARCH_QUERY = """
query SearchProducts($query: String!, $first: Int!) {
  products(first: $first, query: $query) {
    edges { node { %s } }
  }
}
""" % _PRODUCT_FIELDS

COLLECTIONS_QUERY = """
query GetCollections($first: Int!) {
  collections(first: $first) {
    edges {
      node {
        id
        title
        description
        handle
        image { url altText }
        products(first: 5) {
          edges { node { id title } }
        }
      }
    }
  }
}
"""

_CART_FIELDS = """
    cart { id checkoutUrl }
    userErrors { field message }
"""

CART_CREATE_MUTATION = """
mutation CreateCart($input: CartInput!) {
  cartCreate(input: $input) { %s }
}
""" % _CART_FIELDS

CART_LINES_ADD_MUTATION = """
mutation AddToCart($cartId: ID!, $lines: [CartLineInput!]!) {
  cartLinesAdd(cartId: $cartId, lines: $lines) { %s }
}
""" % _CART_FIELDS


class StorefrontClient:
    """Read access to a shop's catalog plus one-shot cart mutations over the
    Storefront GraphQL API. Nothing here retries; callers decide."""

    def __init__(self, domain: str, access_token: str,
                 session: Optional[requests.Session] = None,
                 timeout: Optional[float] = None):
        self.domain = domain.replace("https://", "").replace("http://", "").strip("/")
        self.endpoint = f"https://{self.domain}/api/{API_VERSION}/graphql.json"
        self.headers = {
            "X-Shopify-Storefront-Access-Token": access_token or "",
            "Content-Type": "application/json"
        }
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else float(os.getenv("STOREFRONT_TIMEOUT", "30"))

    # ---------------------------------------------------------
    # TRANSPORT
    # ---------------------------------------------------------
    def query(self, graphql: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self.session.post(
                self.endpoint,
                json={"query": graphql, "variables": variables or {}},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Storefront request to {self.domain} failed: {e}")
            raise UpstreamError(f"Storefront API unreachable: {e}") from e

        if response.status_code != 200:
            logger.error(f"Storefront API error for {self.domain}: {response.status_code} - {response.text[:200]}")
            raise UpstreamError(f"Storefront API error: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError("Storefront API returned a non-JSON body") from e

        if payload.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in payload["errors"])
            raise UpstreamError(f"GraphQL errors: {messages}")
        return payload.get("data") or {}

    # ---------------------------------------------------------
    # CATALOG
    # ---------------------------------------------------------
    def fetch_all_products(self, page_size: int = MAX_PAGE_SIZE) -> List[Product]:
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        products: List[Product] = []
        after = None
        has_next_page = True

        while has_next_page:
            data = self.query(PRODUCTS_QUERY, {"first": page_size, "after": after})
            connection = data.get("products") or {}
            products.extend(self._products_from_edges(connection.get("edges")))

            page_info = connection.get("pageInfo") or {}
            has_next_page = bool(page_info.get("hasNextPage"))
            after = page_info.get("endCursor")
            if has_next_page and not after:
                raise UpstreamError("Storefront API reported another page without a cursor")

        logger.info(f"Storefront fetch complete: {len(products)} products from {self.domain}")
        return products

    def _products_from_edges(self, edges: List[Dict[str, Any]]) -> List[Product]:
        products = []
        for edge in edges or []:
            node = (edge or {}).get("node")
            if not node or not node.get("id"):
                logger.warning(f"Skipping product node without an id from {self.domain}")
                continue
            products.append(self.transform_product(node))
        return products

    def search_products(self, search_query: str, limit: int = 20) -> List[Product]:
        """Live search against the storefront, bypassing the local cache."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        data = self.query(SEARCH_QUERY, {"query": search_query, "first": limit})
        return self._products_from_edges((data.get("products") or {}).get("edges"))

    def get_collections(self, limit: int = 50) -> List[Collection]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        data = self.query(COLLECTIONS_QUERY, {"first": limit})
        collections = []
        for edge in (data.get("collections") or {}).get("edges") or []:
            node = (edge or {}).get("node")
            if not node or not node.get("id"):
                continue
            collections.append(Collection(
                id=str(node["id"]),
                title=str(node.get("title") or ""),
                description=str(node.get("description") or ""),
                handle=str(node.get("handle") or ""),
                image=self._image(node.get("image")),
                products=[
                    CollectionProduct(id=str(p["node"]["id"]), title=str(p["node"].get("title") or ""))
                    for p in (node.get("products") or {}).get("edges") or []
                    if (p or {}).get("node") and p["node"].get("id")
                ],
            ))
        return collections

    def get_product(self, product_id: str) -> Optional[Product]:
        data = self.query(PRODUCT_QUERY, {"id": product_id})
        node = data.get("product")
        return self.transform_product(node) if node and node.get("id") else None

    # ---------------------------------------------------------
    # CART
    # ---------------------------------------------------------
    def create_cart(self, line_items: List[Dict[str, Any]]) -> CheckoutSession:
        data = self.query(CART_CREATE_MUTATION, {"input": {"lines": self._lines(line_items)}})
        return self._cart_from_payload(data.get("cartCreate"))

    def add_to_cart(self, cart_id: str, line_items: List[Dict[str, Any]]) -> CheckoutSession:
        data = self.query(CART_LINES_ADD_MUTATION, {"cartId": cart_id, "lines": self._lines(line_items)})
        return self._cart_from_payload(data.get("cartLinesAdd"))

    def _lines(self, line_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {"merchandiseId": item["variant_id"], "quantity": int(item.get("quantity", 1))}
            for item in line_items
        ]

    def _cart_from_payload(self, payload: Optional[Dict[str, Any]]) -> CheckoutSession:
        payload = payload or {}
        user_errors = payload.get("userErrors") or []
        if user_errors:
            details = [
                {"field": ".".join(e.get("field") or []), "message": e.get("message", "")}
                for e in user_errors
            ]
            summary = ", ".join(f"{d['field']}: {d['message']}" if d["field"] else d["message"] for d in details)
            raise UpstreamError(f"Storefront rejected cart: {summary}", details=details)

        cart = payload.get("cart")
        if not cart:
            raise UpstreamError("Storefront returned no cart")
        return CheckoutSession(id=cart["id"], checkout_url=cart["checkoutUrl"])

    # ---------------------------------------------------------
    # MAPPING
    # ---------------------------------------------------------
    def _clean_html(self, raw_html: str) -> str:
        from bs4 import BeautifulSoup
        if not raw_html: return ""
        return BeautifulSoup(raw_html, "html.parser").get_text(separator="\n").strip()

    def _money(self, money: Optional[Dict[str, Any]]) -> Optional[Decimal]:
        if not money or money.get("amount") in (None, ""):
            return None
        try:
            return Decimal(str(money["amount"]))
        except InvalidOperation:
            return None

    def _image(self, node: Optional[Dict[str, Any]]) -> Optional[ProductImage]:
        if not node or not node.get("url"):
            return None
        return ProductImage(url=node["url"], alt_text=node.get("altText"))

    def transform_product(self, item: Dict[str, Any]) -> Product:
        min_price = (item.get("priceRange") or {}).get("minVariantPrice")
        compare_price = (item.get("compareAtPriceRange") or {}).get("minVariantPrice")

        images = []
        for edge in (item.get("images") or {}).get("edges") or []:
            image = self._image(edge.get("node"))
            if image: images.append(image)

        variants = []
        for edge in (item.get("variants") or {}).get("edges") or []:
            v = (edge or {}).get("node") or {}
            if not v.get("id"):
                continue
            qty = v.get("quantityAvailable")
            variants.append(ProductVariant(
                id=str(v["id"]),
                title=str(v.get("title") or ""),
                available=bool(v.get("availableForSale")),
                quantity_available=max(qty, 0) if qty is not None else None,
                price_amount=self._money(v.get("priceV2")) or Decimal("0"),
                compare_at_price=self._money(v.get("compareAtPriceV2")),
                options={o["name"]: o["value"] for o in v.get("selectedOptions") or [] if o.get("name")},
                image=self._image(v.get("image")),
            ))

        # Shopify sends tags as a list; keep first occurrence order
        tags = list(dict.fromkeys(t for t in (item.get("tags") or []) if t))

        description = item.get("description") or self._clean_html(item.get("descriptionHtml") or "")

        return Product(
            id=str(item["id"]),
            title=str(item.get("title") or ""),
            description=description,
            vendor=str(item.get("vendor") or ""),
            product_type=str(item.get("productType") or ""),
            tags=tags,
            images=images,
            variants=variants,
            price_amount=self._money(min_price) or Decimal("0"),
            currency_code=(min_price or {}).get("currencyCode") or "USD",
            compare_at_price=self._money(compare_price),
            available=bool(item.get("availableForSale")),
        )
