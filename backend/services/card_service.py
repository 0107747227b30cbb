"""Card views: the static catalog merged with store metadata and statistics.

The catalog (CDN JSON) is authoritative for descriptive fields. The store
owns the numeric ``card_id`` used for submissions, image/acceptance
overrides, and everything computed from records.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError, ValidationError
from db.models.card import Card
from db.models.referral import Referral
from db.session import get_or_use_session
from services import catalog_service
from services.statistics_service import (
    EMPTY_STATISTICS,
    build_graph_series,
    get_all_card_counts,
    get_card_statistics,
    get_graph_rows,
)

logger = logging.getLogger(__name__)

CARD_SUFFIX = " Card"

# Match ranks, best first
MATCH_SLUG = 0
MATCH_EXACT = 1
MATCH_SUFFIX_STRIPPED = 2
MATCH_PREFIX = 3


def strip_card_suffix(name: str) -> str:
    return name[: -len(CARD_SUFFIX)] if name.endswith(CARD_SUFFIX) else name


def _store_card_dict(card: Card) -> Dict[str, Any]:
    return {
        "card_id": card.card_id,
        "card_name": card.card_name,
        "slug": card.slug,
        "card_image_link": card.card_image_link,
        "accepting_applications": card.accepting_applications,
        "apply_link": card.apply_link,
        "card_referral_link": card.card_referral_link,
    }


def rank_store_match(catalog_name: str, catalog_slug: Optional[str], store_card: Dict[str, Any]) -> Optional[int]:
    store_slug = store_card.get("slug")
    if catalog_slug and store_slug and store_slug == catalog_slug:
        return MATCH_SLUG
    store_name = store_card.get("card_name") or ""
    if not store_name or not catalog_name:
        return None
    if store_name == catalog_name:
        return MATCH_EXACT
    if store_name == strip_card_suffix(catalog_name):
        return MATCH_SUFFIX_STRIPPED
    if catalog_name.startswith(store_name):
        return MATCH_PREFIX
    return None


def match_store_card(catalog_card: Dict[str, Any], store_cards: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Pick the store row for a catalog entry: slug, exact name, name without
    " Card", then a store name the catalog name starts with. Ties go to the
    oldest (lowest) card_id."""
    catalog_name = catalog_service.catalog_card_name(catalog_card)
    catalog_slug = catalog_card.get("slug")
    best: Optional[Tuple[int, int, Dict[str, Any]]] = None
    for store_card in store_cards:
        rank = rank_store_match(catalog_name, catalog_slug, store_card)
        if rank is None:
            continue
        key = (rank, int(store_card["card_id"]), store_card)
        if best is None or key[:2] < best[:2]:
            best = key
    if best is None:
        return None
    if best[0] > MATCH_EXACT:
        logger.info(f"Card '{catalog_name}' matched store card '{best[2].get('card_name')}' by fuzzy name (rank {best[0]})")
    return best[2]


def merge_card(
    catalog_card: Dict[str, Any],
    store_card: Optional[Dict[str, Any]] = None,
    stats: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Merged client view of one card. Pure: the same inputs give the same output."""
    store_card = store_card or {}
    stats = stats or {}
    merged = dict(catalog_card)
    merged["slug"] = catalog_service.catalog_card_slug(catalog_card)
    if store_card.get("card_id") is not None:
        # Submissions need the store's numeric id; the slug stays for routing
        merged["card_id"] = store_card["card_id"]
    merged["card_image_link"] = store_card.get("card_image_link") or catalog_card.get("image") or None
    if store_card.get("accepting_applications") is not None:
        merged["accepting_applications"] = bool(store_card["accepting_applications"])
    else:
        merged["accepting_applications"] = catalog_card.get("accepting_applications")
    merged["approved_count"] = int(stats.get("approved_count") or 0)
    merged["rejected_count"] = int(stats.get("rejected_count") or 0)
    merged["total_records"] = int(stats.get("total_records") or 0)
    return merged


def merge_catalog(
    catalog_cards: List[Dict[str, Any]],
    store_cards: List[Dict[str, Any]],
    stats_by_card_id: Dict[int, Dict[str, Any]],
) -> List[Dict[str, Any]]:
    merged = []
    for catalog_card in catalog_cards:
        store_card = match_store_card(catalog_card, store_cards)
        stats = stats_by_card_id.get(store_card["card_id"]) if store_card else None
        merged.append(merge_card(catalog_card, store_card, stats))
    return merged


async def load_store_snapshot(db: AsyncSession = None) -> Tuple[List[Dict[str, Any]], Dict[int, Dict[str, Any]]]:
    async with get_or_use_session(db) as _db:
        cards = (await _db.execute(select(Card))).scalars().all()
        stats = await get_all_card_counts(_db)
    return [_store_card_dict(card) for card in cards], stats


async def _load_store_snapshot_or_empty(db: AsyncSession = None):
    try:
        return await load_store_snapshot(db)
    except Exception as e:
        # Catalog data is still useful without statistics
        logger.warning(f"Card store unavailable, serving catalog without statistics: {e}")
        if db is not None:
            await db.rollback()
        return [], {}


async def get_all_cards(db: AsyncSession = None) -> List[Dict[str, Any]]:
    # Both branches finish before a catalog error propagates
    catalog_cards, snapshot = await asyncio.gather(
        catalog_service.fetch_catalog(),
        _load_store_snapshot_or_empty(db),
        return_exceptions=True,
    )
    if isinstance(catalog_cards, BaseException):
        raise catalog_cards
    if isinstance(snapshot, BaseException):
        raise snapshot
    store_cards, stats = snapshot
    return merge_catalog(catalog_cards, store_cards, stats)


async def find_store_card(name: str, slug: Optional[str] = None, db: AsyncSession = None) -> Optional[Dict[str, Any]]:
    """Store row for a card name (or slug), using the same ranking as the merge."""
    conditions = [
        Card.card_name == name,
        Card.card_name == strip_card_suffix(name),
        literal(name).like(Card.card_name.concat("%")),
    ]
    if slug:
        conditions.append(Card.slug == slug)
    async with get_or_use_session(db) as _db:
        rows = (await _db.execute(select(Card).where(or_(*conditions)))).scalars().all()
    return match_store_card({"card_name": name, "slug": slug}, [_store_card_dict(row) for row in rows])


async def get_approved_referrals(card_id: int, db: AsyncSession = None) -> List[Dict[str, Any]]:
    stmt = (
        select(Referral.referral_id, Referral.referral_link)
        .where(Referral.card_id == card_id, Referral.admin_approved.is_(True))
        .order_by(Referral.referral_id)
    )
    async with get_or_use_session(db) as _db:
        rows = (await _db.execute(stmt)).mappings().all()
    return [dict(row) for row in rows]


async def _load_card_detail(name: str, slug: Optional[str], db: AsyncSession = None):
    store_card = await find_store_card(name, slug, db)
    if store_card is None:
        return None, None, []
    stats = await get_card_statistics(store_card["card_id"], db)
    referrals = await get_approved_referrals(store_card["card_id"], db)
    return store_card, stats, referrals


async def get_card(card_name: str, db: AsyncSession = None) -> Dict[str, Any]:
    if not card_name.strip():
        raise ValidationError("card_name is required")
    catalog_cards = await catalog_service.fetch_catalog()
    catalog_card = catalog_service.find_catalog_card(catalog_cards, card_name)
    if catalog_card is None:
        raise NotFoundError(f"Card not found: {card_name}")

    try:
        store_card, stats, referrals = await _load_card_detail(
            catalog_service.catalog_card_name(catalog_card), catalog_card.get("slug"), db
        )
    except Exception as e:
        logger.warning(f"Card store unavailable for '{card_name}', serving catalog only: {e}")
        if db is not None:
            await db.rollback()
        store_card, stats, referrals = None, None, []

    stats = stats or EMPTY_STATISTICS
    store_card = store_card or {}
    merged = merge_card(catalog_card, store_card, stats)
    merged.update(
        {
            "approved_median_credit_score": stats.get("approved_median_credit_score"),
            "approved_median_income": stats.get("approved_median_income"),
            "approved_median_length_credit": stats.get("approved_median_length_credit"),
            "apply_link": store_card.get("apply_link") or catalog_card.get("apply_link") or None,
            "card_referral_link": store_card.get("card_referral_link") or catalog_card.get("card_referral_link") or None,
            "referrals": referrals,
        }
    )
    return merged


async def get_card_graphs(card_name: str, db: AsyncSession = None) -> Dict[str, Any]:
    if not card_name.strip():
        raise ValidationError("card_name is required")
    name, slug = card_name, None
    try:
        catalog_cards = await catalog_service.fetch_catalog()
    except Exception as e:
        # The store can still be searched by the raw name
        logger.warning(f"Catalog unavailable for graph lookup, using raw name: {e}")
        catalog_cards = []
    catalog_card = catalog_service.find_catalog_card(catalog_cards, card_name)
    if catalog_card is not None:
        name, slug = catalog_service.catalog_card_name(catalog_card), catalog_card.get("slug")

    store_card = await find_store_card(name, slug, db)
    if store_card is None:
        raise NotFoundError(f"Card not found: {name}")
    rows = await get_graph_rows(store_card["card_id"], db)
    return build_graph_series(rows)
