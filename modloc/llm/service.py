"""
LLM Provider Service

Ties together the keyring credentials, the provider HTTP clients, the
stored model list and the per-provider circuit breakers.
"""

import threading
from typing import Any, Dict, List, Optional

import httpx

from modloc import config
from modloc.core import database as db
from modloc.errors import InvalidDataError
from modloc.llm import models as model_repo
from modloc.llm import providers
from modloc.llm.circuit_breaker import CircuitBreakerManager
from modloc.llm.credentials import CredentialStore
from modloc.logger import get_logger

logger = get_logger(__name__)


def mask_api_key(api_key: Optional[str]) -> Optional[str]:
    if not api_key:
        return None
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


class LlmProviderService:
    """Provider keys, connection checks and model refreshes, guarded by circuit breakers."""

    def __init__(self, credentials: CredentialStore = None, breakers: CircuitBreakerManager = None,
                 transport: httpx.BaseTransport = None):
        self.credentials = credentials or CredentialStore()
        self.breakers = breakers or CircuitBreakerManager()
        self.transport = transport

    def _check_provider(self, provider: str):
        if provider not in config.BUILTIN_PROVIDERS:
            raise InvalidDataError(f"Unknown provider: {provider}", details={"provider": provider})

    def _require_api_key(self, provider: str) -> str:
        api_key = self.credentials.get_api_key(provider)
        if not api_key:
            raise InvalidDataError(f"{provider} API key not configured", details={"provider": provider})
        return api_key

    def _validate(self, provider: str, api_key: str) -> bool:
        return self.breakers.execute(
            provider,
            lambda: providers.validate_api_key(provider, api_key, transport=self.transport),
        )

    # ============================================================
    # API keys
    # ============================================================

    def save_api_key(self, provider: str, api_key: str, validate: bool = True) -> Dict[str, Any]:
        """
        Store a provider API key in the keyring.

        Raises:
            InvalidDataError: Unknown provider, empty key, or the provider rejected it.
            ProviderError: The provider could not be reached.
            CircuitBreakerOpenError: The provider's breaker is open.
        """
        self._check_provider(provider)
        api_key = (api_key or "").strip()
        if not api_key:
            raise InvalidDataError("API key cannot be empty", details={"field": "api_key"})

        if validate and not self._validate(provider, api_key):
            raise InvalidDataError(f"{provider} rejected the API key", details={"provider": provider})

        self.credentials.set_api_key(provider, api_key)
        return self.get_api_key_status(provider)

    def get_api_key_status(self, provider: str) -> Dict[str, Any]:
        self._check_provider(provider)
        api_key = self.credentials.get_api_key(provider)
        return {
            "provider": provider,
            "display_name": config.BUILTIN_PROVIDER_DISPLAY_NAMES[provider],
            "has_api_key": bool(api_key),
            "masked_key": mask_api_key(api_key),
        }

    def get_all_api_key_statuses(self) -> List[Dict[str, Any]]:
        return [self.get_api_key_status(provider) for provider in config.BUILTIN_PROVIDERS]

    def delete_api_key(self, provider: str):
        self._check_provider(provider)
        self.credentials.delete_api_key(provider)

    def test_connection(self, provider: str) -> Dict[str, Any]:
        self._check_provider(provider)
        valid = self._validate(provider, self._require_api_key(provider))
        logger.info(f"Connection test for {provider}: {'ok' if valid else 'key rejected'}")
        return {"provider": provider, "valid": valid}

    # ============================================================
    # Models
    # ============================================================

    def refresh_models(self, provider: str) -> Dict[str, Any]:
        """Fetch the provider's model list, store it and archive models it no longer returns."""
        self._check_provider(provider)
        api_key = self._require_api_key(provider)
        fetched = self.breakers.execute(
            provider,
            lambda: providers.fetch_models(provider, api_key, transport=self.transport),
        )

        fetched_at = db.now_ts()
        model_repo.upsert_many(provider, fetched, fetched_at=fetched_at)
        archived = model_repo.archive_stale_models(provider, fetched_at) if fetched else 0
        logger.info(f"Refreshed {provider} models: {len(fetched)} fetched, {archived} archived")
        return {
            "provider": provider,
            "fetched": len(fetched),
            "archived": archived,
            "models": model_repo.get_by_provider(provider, include_archived=True),
        }

    # ============================================================
    # Circuit breakers
    # ============================================================

    def get_circuit_breaker_status(self, provider: str) -> Dict[str, Any]:
        return self.breakers.get_status(provider)

    def get_all_circuit_breaker_statuses(self) -> Dict[str, Dict[str, Any]]:
        statuses = {provider: self.breakers.get_status(provider) for provider in config.BUILTIN_PROVIDERS}
        statuses.update(self.breakers.get_all_statuses())
        return statuses

    def reset_circuit_breaker(self, provider: str) -> Dict[str, Any]:
        self.breakers.reset(provider)
        return self.breakers.get_status(provider)


_service: Optional[LlmProviderService] = None
_service_lock = threading.Lock()


def get_llm_provider_service() -> LlmProviderService:
    """Process-wide service so breaker state survives across requests."""
    global _service
    with _service_lock:
        if _service is None:
            _service = LlmProviderService()
        return _service


def set_llm_provider_service(service: Optional[LlmProviderService]):
    global _service
    with _service_lock:
        _service = service
