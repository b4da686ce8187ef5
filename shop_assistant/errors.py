from typing import Dict, List, Optional


class AssistantError(Exception):
    """Base class for every error the assistant core raises on purpose."""


class ValidationError(AssistantError):
    """Malformed input, e.g. a cart quantity below 1. Never retried."""


class NotFoundError(AssistantError):
    """A product, variant, cart item or conversation does not exist."""


class AuthError(AssistantError):
    """Missing, unknown or disabled API key. Callers must not learn which."""


class UpstreamError(AssistantError):
    """The storefront API or the model provider failed.

    ``details`` carries the provider's ``{field, message}`` entries when the
    storefront reported user-facing errors on a mutation.
    """

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.details = details or []
