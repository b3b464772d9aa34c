"""Platform -> adapter binding."""

from typing import Dict, Optional, Type

import httpx

from src.config.constants import Platform
from src.services.integrations.platforms.base import PlatformAdapter
from src.services.integrations.platforms.facebook import FacebookAdapter, InstagramAdapter
from src.services.integrations.platforms.tiktok import TikTokAdapter
from src.services.integrations.platforms.twitter import TwitterAdapter

ADAPTER_CLASSES: Dict[Platform, Type[PlatformAdapter]] = {
    Platform.FACEBOOK: FacebookAdapter,
    Platform.INSTAGRAM: InstagramAdapter,
    Platform.TWITTER: TwitterAdapter,
    Platform.TIKTOK: TikTokAdapter,
}

_missing = set(Platform) - set(ADAPTER_CLASSES)
if _missing:
    raise RuntimeError(f"No adapter registered for: {sorted(p.value for p in _missing)}")


def build_adapters(
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[Platform, PlatformAdapter]:
    """Instantiate one adapter per platform."""
    return {
        platform: adapter_class(timeout=timeout, transport=transport)
        for platform, adapter_class in ADAPTER_CLASSES.items()
    }


def get_adapter(platform, adapters: Optional[Dict[Platform, PlatformAdapter]] = None) -> PlatformAdapter:
    """
    Look up the adapter for a platform value.

    Raises:
        ValueError: Unknown platform string
    """
    platform = Platform(platform)
    if adapters is not None:
        return adapters[platform]
    return ADAPTER_CLASSES[platform]()
