"""Sync the ``cards`` table from the catalog.

New catalog entries get a store row (and so a numeric ``card_id``); existing
rows are refreshed. Rows are matched by slug first, then by exact name for
rows created before slugs were stored.
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.card import Card
from db.session import get_or_use_session
from schemas.user_schema import CurrentUser
from services import catalog_service
from services.audit_service import ACTION_SYNC, ENTITY_CARD, AuditEvent
from utils.db import safe_commit

logger = logging.getLogger(__name__)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    return int(value)


def catalog_entry_values(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Store column values for one catalog entry. Raises ValueError when unusable."""
    if not isinstance(entry, dict):
        raise ValueError("catalog entry is not an object")
    name = catalog_service.catalog_card_name(entry).strip()
    if not name:
        raise ValueError("catalog entry has no name")
    tags = entry.get("tags")
    if tags is not None and not isinstance(tags, list):
        raise ValueError("tags must be a list")
    return {
        "card_name": name,
        "slug": catalog_service.catalog_card_slug(entry),
        "bank": entry.get("bank") or None,
        "annual_fee": _optional_int(entry.get("annual_fee")),
        "accepting_applications": bool(entry.get("accepting_applications", True)),
        "card_image_link": entry.get("image") or None,
        "apply_link": entry.get("apply_link") or None,
        "card_referral_link": entry.get("card_referral_link") or None,
        "release_date": str(entry["release_date"]) if entry.get("release_date") else None,
        "tags": tags,
    }


async def sync_cards(admin: CurrentUser, db: AsyncSession = None):
    catalog_cards = await catalog_service.fetch_catalog(cache_bust=True)
    results: Dict[str, List[Any]] = {"added": [], "updated": [], "errors": []}

    async with get_or_use_session(db) as _db:
        existing = (await _db.execute(select(Card).order_by(Card.card_id))).scalars().all()
        by_slug = {card.slug: card for card in existing if card.slug}
        by_name: Dict[str, Card] = {}
        for card in existing:
            # Oldest row wins for duplicated names
            by_name.setdefault(card.card_name, card)

        for entry in catalog_cards:
            try:
                values = catalog_entry_values(entry)
            except (TypeError, ValueError) as e:
                label = catalog_service.catalog_card_name(entry) if isinstance(entry, dict) else repr(entry)
                logger.warning(f"Skipping catalog entry {label!r}: {e}")
                results["errors"].append({"card": label, "error": str(e)})
                continue

            card = by_slug.get(values["slug"]) or by_name.get(values["card_name"])
            if card is None:
                card = Card(active=True, **values)
                _db.add(card)
                results["added"].append(values["card_name"])
            else:
                for key, value in values.items():
                    setattr(card, key, value)
                results["updated"].append(values["card_name"])
            if values["slug"]:
                by_slug[values["slug"]] = card
            by_name.setdefault(values["card_name"], card)

        await safe_commit(_db, conflict_message="Card sync conflicted with a concurrent change")

    logger.info(
        f"Card sync: {len(results['added'])} added, {len(results['updated'])} updated, {len(results['errors'])} errors"
    )
    summary = {key: len(value) for key, value in results.items()}
    event = AuditEvent(admin.subject_id, ACTION_SYNC, ENTITY_CARD, None, summary)
    return results, [event]
