import asyncio
import logging
import ssl
import time
from typing import Any, Dict, List, Optional

import aiohttp
import certifi

from core.config import settings
from core.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)


async def fetch_catalog(cache_bust: bool = False) -> List[Dict[str, Any]]:
    """Fetch the static card catalog (``{"cards": [...]}``) from the CDN origin.

    ``cache_bust`` appends a timestamp query parameter so a sync right after a
    deploy does not read a stale edge copy.
    """
    params = {"t": str(int(time.time() * 1000))} if cache_bust else None
    timeout = aiohttp.ClientTimeout(total=settings.CATALOG_TIMEOUT_SECONDS)
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(settings.CARDS_JSON_URL, params=params, ssl=ssl_context) as resp:
                if resp.status != 200:
                    raise UpstreamUnavailableError(f"Card catalog returned HTTP {resp.status}")
                payload = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Card catalog fetch failed: {e}")
        raise UpstreamUnavailableError("Card catalog is unavailable") from e
    except ValueError as e:
        logger.error(f"Card catalog is not valid JSON: {e}")
        raise UpstreamUnavailableError("Card catalog could not be parsed") from e

    cards = payload.get("cards") if isinstance(payload, dict) else None
    if not isinstance(cards, list):
        raise UpstreamUnavailableError("Card catalog could not be parsed")
    logger.debug(f"Fetched {len(cards)} catalog cards")
    return cards


def catalog_card_name(card: Dict[str, Any]) -> str:
    return card.get("card_name") or card.get("name") or ""


def catalog_card_slug(card: Dict[str, Any]) -> Optional[str]:
    # Older catalog builds only carried the slug in card_id
    slug = card.get("slug") or card.get("card_id")
    return str(slug) if slug is not None else None


def find_catalog_card(cards: List[Dict[str, Any]], name_or_slug: str) -> Optional[Dict[str, Any]]:
    """Find a catalog entry by full name or slug."""
    for card in cards:
        if name_or_slug in (card.get("card_name"), card.get("name"), card.get("slug")):
            return card
    return None
