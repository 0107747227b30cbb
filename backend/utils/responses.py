from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from core.config import settings

# User-specific and admin payloads must never be cached by browsers or the CDN
PRIVATE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def no_store_json(data, status_code: int = 200):
    return JSONResponse(content=jsonable_encoder(data), status_code=status_code, headers=PRIVATE_HEADERS)


def public_json(data, max_age: int = None):
    """Catalog-derived payload that shared caches may keep for a short while."""
    seconds = settings.PUBLIC_CACHE_SECONDS if max_age is None else max_age
    headers = {"Cache-Control": f"public, max-age={int(seconds)}"} if seconds > 0 else PRIVATE_HEADERS
    return JSONResponse(content=jsonable_encoder(data), headers=headers)
