import asyncio
import re
import ssl
import time
from typing import Dict, Optional

import aiohttp
import certifi
from jose import JWTError, jwt
from fastapi.security import HTTPBearer
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# Bearer scheme (used by OpenAPI 'Authorize' button)
bearer_scheme = HTTPBearer(auto_error=False)

FIREBASE_ALGORITHMS = ["RS256"]

# kid -> PEM certificate, refreshed when the origin's max-age runs out
_signing_keys: Dict[str, str] = {}
_signing_keys_expire_at: float = 0.0

_MAX_AGE_RE = re.compile(r"max-age=(\d+)")


def _parse_max_age(cache_control: Optional[str], default: int = 3600) -> int:
    if not cache_control:
        return default
    match = _MAX_AGE_RE.search(cache_control)
    if not match:
        return default
    return int(match.group(1))


def firebase_issuer() -> str:
    return f"https://securetoken.google.com/{settings.FIREBASE_PROJECT_ID}"


async def _get_signing_keys() -> Dict[str, str]:
    """Return Google's current token signing certificates keyed by kid."""
    global _signing_keys, _signing_keys_expire_at
    if _signing_keys and time.time() < _signing_keys_expire_at:
        return _signing_keys

    timeout = aiohttp.ClientTimeout(total=settings.FIREBASE_CERTS_TIMEOUT)
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(settings.FIREBASE_CERTS_URL, ssl=ssl_context) as resp:
            resp.raise_for_status()
            keys = await resp.json(content_type=None)
            max_age = _parse_max_age(resp.headers.get("Cache-Control"))

    _signing_keys = dict(keys or {})
    _signing_keys_expire_at = time.time() + max_age
    logger.debug("Refreshed %d token signing keys (max-age=%ss)", len(_signing_keys), max_age)
    return _signing_keys


async def verify_token(token: str) -> Optional[dict]:
    """Verify a Firebase ID token and return its claims, or None when invalid."""
    if not token:
        return None
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as e:
        logger.warning(f"Malformed token header: {e}")
        return None

    kid = header.get("kid")
    if not kid:
        logger.warning("Token has no kid header")
        return None

    try:
        keys = await _get_signing_keys()
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        # ValueError: the certificate response was not JSON
        logger.error(f"Could not fetch token signing keys: {e}")
        return None

    key = keys.get(kid)
    if key is None:
        logger.warning(f"Unknown token signing key: {kid}")
        return None

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=FIREBASE_ALGORITHMS,
            audience=settings.FIREBASE_PROJECT_ID,
            issuer=firebase_issuer(),
        )
    except JWTError as e:
        logger.warning(f"JWT decode failed: {e}")
        return None

    if not payload.get("sub"):
        return None
    return payload


def get_subject_from_unverified_token(token: str) -> Optional[str]:
    """Read the subject claim without verifying the signature.

    Only for log context; never use the result for authorization.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    return claims.get("sub") or claims.get("user_id")
