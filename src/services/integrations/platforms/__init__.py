"""Social platform adapters."""

from src.services.integrations.platforms.base import (
    PlatformAdapter,
    PlatformCredentials,
    PublishRequest,
    PublishResult,
    RefreshedToken,
)
from src.services.integrations.platforms.registry import ADAPTER_CLASSES, build_adapters, get_adapter

__all__ = [
    "PlatformAdapter",
    "PlatformCredentials",
    "PublishRequest",
    "PublishResult",
    "RefreshedToken",
    "ADAPTER_CLASSES",
    "build_adapters",
    "get_adapter",
]
