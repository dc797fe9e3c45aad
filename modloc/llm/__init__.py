"""
LLM module - provider settings

This module provides:
- LlmProviderService: API keys, connection tests, model refresh
- CircuitBreaker / CircuitBreakerManager: per-provider failure isolation
- models: stored provider models (enable, default, archive)
- LlmCustomRulesService: global and per-project prompt rules
"""

from modloc.llm.circuit_breaker import CircuitBreaker, CircuitBreakerManager, CircuitBreakerOpenError
from modloc.llm.credentials import CredentialStore
from modloc.llm.providers import ProviderError
from modloc.llm.rules import LlmCustomRulesService
from modloc.llm.service import LlmProviderService, get_llm_provider_service

__all__ = [
    'CircuitBreaker',
    'CircuitBreakerManager',
    'CircuitBreakerOpenError',
    'CredentialStore',
    'LlmCustomRulesService',
    'LlmProviderService',
    'ProviderError',
    'get_llm_provider_service',
]
