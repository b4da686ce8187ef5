import hmac
import json
import logging
import os
from typing import Dict, Iterable, List, Optional
from .errors import AuthError
from .models import TenantConfig

logger = logging.getLogger(__name__)

PROVIDER_KEY_VARS = {
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


class TenantRegistry:
    """Maps shared-secret SDK keys to tenant configuration."""

    def __init__(self, tenants: Iterable[TenantConfig] = ()):
        self._by_key: Dict[str, TenantConfig] = {}
        for tenant in tenants:
            self.register(tenant)

    def register(self, tenant: TenantConfig):
        self._by_key[tenant.api_key] = tenant

    def all(self) -> List[TenantConfig]:
        return list(self._by_key.values())

    def authenticate(self, api_key: Optional[str]) -> TenantConfig:
        # one message for every failure so callers cannot probe keys
        if not api_key:
            raise AuthError("Invalid or disabled API key")
        tenant = next(
            (t for key, t in self._by_key.items() if hmac.compare_digest(key, api_key)),
            None,
        )
        if tenant is None or not tenant.enabled:
            raise AuthError("Invalid or disabled API key")
        return tenant

    @classmethod
    def from_env(cls) -> "TenantRegistry":
        """Loads ``TENANTS_FILE`` (a JSON list of tenants) if set, otherwise a
        single tenant from the SHOP_DOMAIN / SDK_API_KEY variables."""
        path = os.getenv("TENANTS_FILE")
        if path:
            with open(path, encoding="utf-8") as fh:
                entries = json.load(fh)
            tenants = [TenantConfig(**entry) for entry in entries]
            logger.info(f"Loaded {len(tenants)} tenants from {path}")
            return cls(tenants)

        shop = os.getenv("SHOP_DOMAIN")
        api_key = os.getenv("SDK_API_KEY")
        if not (shop and api_key):
            logger.warning("No tenants configured (set TENANTS_FILE or SHOP_DOMAIN + SDK_API_KEY)")
            return cls()

        provider = os.getenv("LLM_PROVIDER", "groq").lower()
        tenant = TenantConfig(
            shop=shop,
            api_key=api_key,
            shop_name=os.getenv("SHOP_NAME"),
            storefront_access_token=os.getenv("SHOPIFY_STOREFRONT_ACCESS_TOKEN"),
            llm_provider=provider,
            llm_model=os.getenv("LLM_MODEL"),
            llm_api_key=os.getenv(PROVIDER_KEY_VARS.get(provider, "GROQ_API_KEY")),
            llm_timeout=float(os.environ["LLM_TIMEOUT"]) if os.getenv("LLM_TIMEOUT") else None,
            custom_prompt=os.getenv("CUSTOM_PROMPT", ""),
            welcome_message=os.getenv("WELCOME_MESSAGE"),
        )
        return cls([tenant])
