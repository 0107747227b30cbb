"""Admin moderation: dashboard numbers, records and referrals.

Mutations return the audit events they produced alongside the response body.
The router hands those events to the audit sink after the commit succeeded.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.models.card import Card
from db.models.record import Record
from db.models.referral import Referral
from db.session import get_or_use_session
from schemas.admin_schema import AdminReferralUpdate
from schemas.user_schema import CurrentUser
from services.audit_service import (
    ACTION_APPROVE,
    ACTION_DELETE,
    ACTION_EDIT,
    ACTION_UNAPPROVE,
    ENTITY_RECORD,
    ENTITY_REFERRAL,
    AuditEvent,
)
from services.referral_service import delete_referral_cascade
from services.referral_stats_service import get_engagement_counts
from utils.db import safe_commit
from utils.serialization import json_safe_value, model_to_dict

logger = logging.getLogger(__name__)

TOP_CARDS_LIMIT = 10
MAX_PAGE_SIZE = 200


def _page_args(page: int, size: int, default_size: int = 50) -> Tuple[int, int]:
    page = max(1, int(page or 1))
    size = max(1, min(int(size or default_size), MAX_PAGE_SIZE))
    return page, size


def _page_body(key: str, items: List[Dict[str, Any]], page: int, size: int, total: int) -> Dict[str, Any]:
    total_pages = max(1, (total + size - 1) // size)
    return {key: items, "page": page, "size": size, "total": total, "total_pages": total_pages}


async def _count(db: AsyncSession, stmt) -> int:
    return int((await db.execute(stmt)).scalar() or 0)


async def get_dashboard_stats(db: AsyncSession = None) -> Dict[str, Any]:
    # Stored timestamps are UTC
    today = datetime.now(timezone.utc).replace(tzinfo=None, hour=0, minute=0, second=0, microsecond=0)
    week_start = today - timedelta(days=7)
    async with get_or_use_session(db) as _db:
        total_records = await _count(_db, select(func.count(Record.record_id)))
        total_referrals = await _count(_db, select(func.count(Referral.referral_id)))
        total_users = await _count(_db, select(func.count(func.distinct(Record.submitter_id))))
        pending_referrals = await _count(
            _db, select(func.count(Referral.referral_id)).where(Referral.admin_approved.is_(False))
        )
        records_today = await _count(
            _db, select(func.count(Record.record_id)).where(Record.submit_datetime >= today)
        )
        records_this_week = await _count(
            _db, select(func.count(Record.record_id)).where(Record.submit_datetime >= week_start)
        )
        record_count = func.count(Record.record_id).label("count")
        top_rows = (
            await _db.execute(
                select(Card.card_id, Card.card_name, record_count)
                .join(Card, Card.card_id == Record.card_id)
                .group_by(Card.card_id, Card.card_name)
                .order_by(record_count.desc(), Card.card_id)
                .limit(TOP_CARDS_LIMIT)
            )
        ).mappings().all()

    return {
        "total_records": total_records,
        "total_referrals": total_referrals,
        "total_users": total_users,
        "pending_referrals": pending_referrals,
        "records_today": records_today,
        "records_this_week": records_this_week,
        "top_cards": [dict(row) for row in top_rows],
    }


async def list_records(page: int = 1, size: int = 50, db: AsyncSession = None) -> Dict[str, Any]:
    page, size = _page_args(page, size)
    async with get_or_use_session(db) as _db:
        total = await _count(_db, select(func.count(Record.record_id)))
        rows = (
            await _db.execute(
                select(Record, Card.card_name, Card.card_image_link, Card.bank)
                .join(Card, Card.card_id == Record.card_id)
                .order_by(Record.submit_datetime.desc(), Record.record_id.desc())
                .offset((page - 1) * size)
                .limit(size)
            )
        ).all()
    records = []
    for record, card_name, card_image_link, bank in rows:
        item = model_to_dict(record)
        item.update({"card_name": card_name, "card_image_link": card_image_link, "bank": bank})
        records.append(item)
    return _page_body("records", records, page, size, total)


async def delete_record(record_id: int, admin: CurrentUser, db: AsyncSession = None) -> Tuple[Dict[str, Any], List[AuditEvent]]:
    """Hard delete, unlike the submitter's soft delete."""
    async with get_or_use_session(db) as _db:
        record = await _db.get(Record, record_id)
        if record is None:
            raise NotFoundError("Record not found")
        snapshot = model_to_dict(record)
        await _db.execute(delete(Record).where(Record.record_id == record_id))
        await safe_commit(_db)
    logger.info(f"Admin deleted record {record_id}")
    event = AuditEvent(admin.subject_id, ACTION_DELETE, ENTITY_RECORD, record_id, snapshot)
    return {"message": "Record deleted", "record_id": record_id}, [event]


async def list_referrals(page: int = 1, size: int = 50, pending_only: bool = False, db: AsyncSession = None) -> Dict[str, Any]:
    page, size = _page_args(page, size)
    filters = [Referral.admin_approved.is_(False)] if pending_only else []
    async with get_or_use_session(db) as _db:
        total = await _count(_db, select(func.count(Referral.referral_id)).where(*filters))
        rows = (
            await _db.execute(
                select(Referral, Card.card_name, Card.card_image_link)
                .join(Card, Card.card_id == Referral.card_id)
                .where(*filters)
                # Pending first
                .order_by(Referral.admin_approved, Referral.submit_datetime.desc(), Referral.referral_id.desc())
                .offset((page - 1) * size)
                .limit(size)
            )
        ).all()
        counts = await get_engagement_counts([r.referral_id for r, *_ in rows], _db)

    referrals = []
    for referral, card_name, card_image_link in rows:
        item = model_to_dict(referral)
        item.update({"card_name": card_name, "card_image_link": card_image_link})
        item.update(counts.get(referral.referral_id, {"impressions": 0, "clicks": 0}))
        referrals.append(item)
    return _page_body("referrals", referrals, page, size, total)


async def update_referral(
    update: AdminReferralUpdate, admin: CurrentUser, db: AsyncSession = None
) -> Tuple[Dict[str, Any], List[AuditEvent]]:
    events: List[AuditEvent] = []
    async with get_or_use_session(db) as _db:
        referral = await _db.get(Referral, update.referral_id)
        if referral is None:
            raise NotFoundError("Referral not found")
        snapshot = model_to_dict(referral)

        if update.referral_link is not None and update.referral_link != referral.referral_link:
            referral.referral_link = update.referral_link
            details = dict(snapshot, new_referral_link=update.referral_link)
            events.append(AuditEvent(admin.subject_id, ACTION_EDIT, ENTITY_REFERRAL, referral.referral_id, details))
        if update.approved is not None:
            referral.admin_approved = update.approved
            action = ACTION_APPROVE if update.approved else ACTION_UNAPPROVE
            events.append(AuditEvent(admin.subject_id, action, ENTITY_REFERRAL, referral.referral_id, snapshot))

        await safe_commit(_db, conflict_message="This referral link is already used for the card")

    logger.info(f"Admin updated referral {update.referral_id}: {[e.action for e in events]}")
    body = {
        "message": "Referral updated",
        "referral_id": update.referral_id,
        "admin_approved": bool(referral.admin_approved),
        "referral_link": json_safe_value(referral.referral_link),
    }
    return body, events


async def delete_referral(referral_id: int, admin: CurrentUser, db: AsyncSession = None) -> Tuple[Dict[str, Any], List[AuditEvent]]:
    async with get_or_use_session(db) as _db:
        referral = await _db.get(Referral, referral_id)
        if referral is None:
            raise NotFoundError("Referral not found")
        snapshot = model_to_dict(referral)
        await delete_referral_cascade(referral_id, _db)
        await safe_commit(_db)
    logger.info(f"Admin deleted referral {referral_id}")
    event = AuditEvent(admin.subject_id, ACTION_DELETE, ENTITY_REFERRAL, referral_id, snapshot)
    return {"message": "Referral deleted", "referral_id": referral_id}, [event]
