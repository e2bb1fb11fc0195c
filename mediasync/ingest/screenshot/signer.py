"""
Signed URL construction for the screenshot rendering service.

The service authenticates a render request by an MD5 token over the shared
secret followed by the query string, so the same target always yields the
same URL.
"""

import hashlib
import logging
from typing import Optional

from ..config.settings import MediaSyncSettings
from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_RENDER_DELAY = 5


def build_screenshot_query(target_url: str, delay: int = DEFAULT_RENDER_DELAY) -> str:
    """Query string for a render request. The target is embedded verbatim."""
    return f"url={target_url}&delay={delay}"


def compute_signature(secret: str, query: str) -> str:
    return hashlib.md5((secret + query).encode("utf-8")).hexdigest()


def sign_url(
    target_url: str,
    base_url: Optional[str],
    api_key: Optional[str],
    secret: Optional[str],
    delay: int = DEFAULT_RENDER_DELAY,
) -> str:
    """
    Build the signed image URL for a target webpage.

    Args:
        target_url: Webpage to render
        base_url: Service base URL, including its trailing slash
        api_key: Service API key
        secret: Shared signing secret
        delay: Rendering delay in seconds

    Returns:
        ``{base_url}{api_key}/{hash}/image?{query}``

    Raises:
        ConfigurationError: If any service credential is missing
    """
    missing = [name for name, value in (("base_url", base_url), ("api_key", api_key), ("secret", secret)) if not value]
    if missing:
        raise ConfigurationError(f"Screenshot service not configured: missing {', '.join(missing)}")

    query = build_screenshot_query(target_url, delay)
    signature = compute_signature(secret, query)  # type: ignore[arg-type]
    return f"{base_url}{api_key}/{signature}/image?{query}"


def sign_screenshot_url(target_url: str, settings: MediaSyncSettings) -> str:
    signed = sign_url(
        target_url,
        base_url=settings.techulus_api_url,
        api_key=settings.techulus_api_key,
        secret=settings.techulus_secret,
        delay=settings.screenshot_delay_seconds,
    )
    logger.debug("Signed screenshot URL", extra={"target_url": target_url})
    return signed
