from typing import List, Dict, Optional
from .models import Product, CartItem, PromptPayload

MAX_CONTEXT_PRODUCTS = 50
DESCRIPTION_PREVIEW_CHARS = 100

GUIDELINES = """GUIDELINES:
1. Be friendly, helpful, and concise
2. When recommending products, reference them by name with clear details
3. If a product is out of stock, suggest alternatives
4. Always confirm before adding items to cart
5. Use natural, conversational language
6. If you don't have information, be honest and say so
7. Focus on understanding customer needs before suggesting products
8. Use markdown formatting for better readability"""


class ContextAssembler:
    """Builds the system prompt for a turn. The catalog excerpt is capped so
    large catalogs are truncated, never sampled."""

    def format_products(self, products: List[Product]) -> str:
        if not products:
            return "No products available"

        lines = []
        for p in products[:MAX_CONTEXT_PRODUCTS]:
            description = p.description[:DESCRIPTION_PREVIEW_CHARS] if p.description else "No description"
            stock = "" if p.available else " [OUT OF STOCK]"
            lines.append(f"- {p.title} (ID: {p.id}) - {p.price_amount} {p.currency_code} - {description}{stock}")
        return "\n".join(lines)

    def build_system_prompt(
        self,
        shop_name: str,
        products: List[Product],
        cart_items: List[CartItem],
        previous_interests: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> str:
        shown = min(len(products), MAX_CONTEXT_PRODUCTS)
        custom_block = f"\n\nCUSTOM INSTRUCTIONS:\n{custom_instructions}" if custom_instructions else ""

        return f"""You are an AI shopping assistant for {shop_name}. Your role is to help customers find products, answer questions, and guide them through their shopping journey.

CAPABILITIES:
- Search and recommend products based on customer needs
- Answer product-related questions (features, sizes, materials, etc.)
- Help customers compare products
- Assist with adding items to cart
- Guide the checkout process

AVAILABLE PRODUCTS ({shown} products):
{self.format_products(products)}

CURRENT CONVERSATION CONTEXT:
- Cart Items: {len(cart_items)}
- Customer Previous Interests: {previous_interests or 'None'}

{GUIDELINES}{custom_block}"""

    def build(
        self,
        shop_name: str,
        products: List[Product],
        cart_items: List[CartItem],
        history: List[Dict[str, str]],
        previous_interests: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> PromptPayload:
        system_prompt = self.build_system_prompt(
            shop_name, products, cart_items, previous_interests, custom_instructions
        )
        messages = [{"role": m["role"], "content": m["content"]} for m in history]
        return PromptPayload(system_prompt=system_prompt, messages=messages)
