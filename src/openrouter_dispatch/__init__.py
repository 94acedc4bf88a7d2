from .catalog import ModelCatalog, ModelRole
from .config import DispatcherConfig
from .contracts import CompletionProvider, CompletionRequest, CompletionResult
from .dispatcher import CompletionDispatcher, build_dispatcher, parse_json_object
from .errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedResponse,
    ProviderError,
    ProviderRejected,
    ProviderUnavailable,
    RateLimitError,
    RequestTimeoutError,
)
from .session import OpenRouterSession

__all__ = [
    "AuthenticationError",
    "CompletionDispatcher",
    "CompletionProvider",
    "CompletionRequest",
    "CompletionResult",
    "ConfigurationError",
    "DispatcherConfig",
    "MalformedResponse",
    "ModelCatalog",
    "ModelRole",
    "OpenRouterSession",
    "ProviderError",
    "ProviderRejected",
    "ProviderUnavailable",
    "RateLimitError",
    "RequestTimeoutError",
    "build_dispatcher",
    "parse_json_object",
]
