"""
LLM Provider HTTP Clients

Key validation and model listing for each built-in provider:
- Anthropic, OpenAI, DeepSeek: GET {api_url}/models
- Gemini: GET {api_url}/models (x-goog-api-key)
- DeepL: GET {api_url}/usage (no model listing)

401/403 answers mean the key is invalid; any other failure raises ProviderError.
"""

from typing import Any, Dict, List, Optional

import httpx

from modloc import config
from modloc.errors import ServiceError
from modloc.logger import get_logger

logger = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class ProviderError(ServiceError):
    default_code = "provider_error"


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 30.0),
            read=timeout_config.get('read', 30.0),
            pool=timeout_config.get('pool', 10.0),
        )
    timeout_value = float(timeout_config) if timeout_config else 30.0
    return httpx.Timeout(connect=10.0, write=30.0, read=timeout_value, pool=10.0)


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Raise ProviderError with the provider's error message when it sends one."""
    status_code = e.response.status_code
    error_text = e.response.text[:500] or "No details"
    try:
        error_json = e.response.json()
        if isinstance(error_json, dict):
            error_detail = error_json.get("error") or error_json.get("message")
            if isinstance(error_detail, dict):
                error_text = error_detail.get("message", str(error_detail))
            elif error_detail:
                error_text = str(error_detail)
    except ValueError:
        pass

    raise ProviderError(f"{provider} API error ({status_code}): {error_text}",
                        details={"provider": provider, "status_code": status_code})


def _auth_headers(provider: str, api_key: str) -> Dict[str, str]:
    if provider == "anthropic":
        return {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}
    if provider == "gemini":
        return {"x-goog-api-key": api_key}
    if provider == "deepl":
        return {"Authorization": f"DeepL-Auth-Key {api_key}"}
    return {"Authorization": f"Bearer {api_key}"}


def _endpoint(provider: str) -> str:
    return "/usage" if provider == "deepl" else "/models"


def _get(provider: str, api_key: str, provider_config: Optional[Dict[str, Any]],
         transport: Optional[httpx.BaseTransport]) -> httpx.Response:
    if provider not in config.BUILTIN_PROVIDERS:
        raise ProviderError(f"Unknown provider: {provider}", details={"provider": provider})
    if not api_key:
        raise ProviderError(f"{provider} API key not configured", details={"provider": provider})

    provider_config = provider_config or config.get_provider_config(provider)
    url = provider_config["api_url"].rstrip("/") + _endpoint(provider)
    logger.debug(f"Calling {provider} API: GET {url}")
    try:
        with httpx.Client(timeout=get_httpx_timeout(provider_config.get("timeout")),
                          transport=transport) as client:
            return client.get(url, headers=_auth_headers(provider, api_key))
    except httpx.TimeoutException as e:
        raise ProviderError(f"{provider} API request timeout", details={"provider": provider}) from e
    except httpx.HTTPError as e:
        logger.error(f"{provider} API request failed: {e}")
        raise ProviderError(f"{provider} API request failed: {e}", details={"provider": provider}) from e


def validate_api_key(provider: str, api_key: str, provider_config: Dict[str, Any] = None,
                     transport: httpx.BaseTransport = None) -> bool:
    """Return True when the provider accepts the key, False on 401/403."""
    response = _get(provider, api_key, provider_config, transport)
    if response.status_code in (401, 403):
        logger.info(f"{provider} rejected the API key ({response.status_code})")
        return False
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        handle_http_error(e, provider)
    return True


def _parse_models(provider: str, payload: Dict[str, Any]) -> List[Dict[str, str]]:
    models = []
    if provider == "gemini":
        for item in payload.get("models", []):
            methods = item.get("supportedGenerationMethods")
            if methods is not None and "generateContent" not in methods:
                continue
            model_id = item.get("name", "").removeprefix("models/")
            if model_id:
                models.append({"model_id": model_id, "display_name": item.get("displayName") or model_id})
        return models

    for item in payload.get("data", []):
        model_id = item.get("id")
        if model_id:
            models.append({"model_id": model_id, "display_name": item.get("display_name") or model_id})
    return models


def fetch_models(provider: str, api_key: str, provider_config: Dict[str, Any] = None,
                 transport: httpx.BaseTransport = None) -> List[Dict[str, str]]:
    """List the provider's models as ``{model_id, display_name}`` dicts."""
    if provider == "deepl":
        return []

    response = _get(provider, api_key, provider_config, transport)
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        handle_http_error(e, provider)

    try:
        payload = response.json()
    except ValueError as e:
        raise ProviderError(f"Unexpected {provider} API response format",
                            details={"provider": provider}) from e
    if not isinstance(payload, dict):
        raise ProviderError(f"Unexpected {provider} API response format", details={"provider": provider})

    models = _parse_models(provider, payload)
    logger.debug(f"Fetched {len(models)} models from {provider}")
    return models
