"""
Provider adapters for agentkit.

This package is the only place that talks to a language-model backend.  Everything else (agent loop,
tools, hosts) stays backend-agnostic and works with :class:`~agentkit.core.schema.ChatResponse`.

We support three wire protocols out of the box:

1. **chat_completions** - flat chat-array requests (OpenAI-compatible endpoints, GitHub Copilot).
2. **responses** - structured "input items" requests (OpenAI Responses API / Codex).
3. **anthropic** - role-tagged content blocks (Anthropic Messages API).

Additional backends can be added by subclassing :class:`ProviderClient` and registering via
:func:`register_provider`.
"""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
    Type,
)

from agentkit.config import settings
from agentkit.providers.base import (
    ProtocolError,
    ProviderClient,
    ProviderError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ProtocolError",
    "ProviderClient",
    "ProviderError",
    "get_context_window",
    "load_provider",
    "register_provider",
]


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: Dict[str, Type[ProviderClient]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type[ProviderClient]) -> Type[ProviderClient]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def available_providers() -> list[str]:
    """Names accepted by :func:`load_provider`."""
    return sorted(_PROVIDER_REGISTRY)


def load_provider(name: str | None = None, model: str | None = None, **kwargs: Any) -> ProviderClient:
    """
    Factory that returns an instantiated provider client.

    Fallback order for the backend:
    1. *name* arg
    2. ``settings.PROVIDER`` env option

    Credentials, endpoint, retry and timeout settings come from :data:`agentkit.config.settings`
    unless overridden through *kwargs*.
    """

    target = (name or settings.PROVIDER).lower()
    cls = _PROVIDER_REGISTRY.get(target)
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")

    options: Dict[str, Any] = {
        "api_key": getattr(settings, cls.api_key_setting, None),
        "endpoint": getattr(settings, cls.endpoint_setting, None),
        "max_retries": settings.MAX_RETRIES,
        "retry_base_delay": settings.RETRY_BASE_DELAY,
        "timeout": settings.REQUEST_TIMEOUT,
    }
    options.update(kwargs)
    if not options["api_key"]:
        logger.warning("No API key configured for provider '%s' (%s)", target, cls.api_key_setting)
    return cls(model or settings.MODEL, **options)


# ---------------------------------------------------------------------------
# Context windows
# ---------------------------------------------------------------------------
DEFAULT_CONTEXT_WINDOW = 128_000

MODEL_CONTEXT_WINDOWS: Dict[str, int] = {
    # OpenAI
    "gpt-4.1": 1_047_576,
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-5": 400_000,
    "gpt-5.3-codex": 400_000,
    "o3": 200_000,
    "o4-mini": 200_000,
    # Anthropic (native and Copilot-style dotted names)
    "claude-opus-4": 200_000,
    "claude-sonnet-4": 200_000,
    "claude-sonnet-4.5": 200_000,
    "claude-sonnet-4.6": 200_000,
    "claude-haiku-4": 200_000,
    "claude-3-5-haiku": 200_000,
    # Google (via OpenAI-compatible gateways)
    "gemini-2.5-pro": 1_000_000,
    "gemini-2.5-flash": 1_000_000,
}


def get_context_window(model: str) -> int:
    """Context window for *model*: exact match, then the longest matching prefix, then the default."""
    if model in MODEL_CONTEXT_WINDOWS:
        return MODEL_CONTEXT_WINDOWS[model]
    # Strip a "vendor/" prefix (e.g. "openai/gpt-4.1") before prefix matching.
    bare = model.rsplit("/", 1)[-1]
    best: Optional[str] = None
    for known in MODEL_CONTEXT_WINDOWS:
        if bare.startswith(known) and (best is None or len(known) > len(best)):
            best = known
    return MODEL_CONTEXT_WINDOWS[best] if best else DEFAULT_CONTEXT_WINDOW


# Concrete providers register themselves on import.
from agentkit.providers import (  # noqa: E402,F401  pylint: disable=wrong-import-position
    anthropic_messages,
    chat_completions,
    responses,
)
