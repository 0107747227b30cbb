"""Referral impressions and clicks.

Recording is best effort: a lost event must never break the page render or
link click that produced it, so ``record_referral_event`` reports failure
through its return value instead of raising.
"""
from typing import Dict, Iterable
import logging

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.referral import REFERRAL_EVENT_TYPES, Referral, ReferralStat
from db.session import get_or_use_session

logger = logging.getLogger(__name__)


async def record_referral_event(referral_id: int, event_type: str, db: AsyncSession = None) -> bool:
    if event_type not in REFERRAL_EVENT_TYPES:
        logger.warning(f"Ignoring unknown referral event type: {event_type}")
        return False
    try:
        async with get_or_use_session(db) as _db:
            exists = (
                await _db.execute(select(Referral.referral_id).where(Referral.referral_id == referral_id))
            ).scalar()
            if exists is None:
                logger.info(f"Ignoring {event_type} for unknown referral {referral_id}")
                return False
            _db.add(ReferralStat(referral_id=referral_id, event_type=event_type))
            await _db.commit()
        return True
    except SQLAlchemyError as e:
        logger.error(f"Failed to record {event_type} for referral {referral_id}: {e}")
        if db is not None:
            await db.rollback()
        return False


async def get_engagement_counts(referral_ids: Iterable[int], db: AsyncSession = None) -> Dict[int, Dict[str, int]]:
    ids = list({int(r) for r in referral_ids})
    counts = {rid: {"impressions": 0, "clicks": 0} for rid in ids}
    if not ids:
        return counts
    stmt = (
        select(
            ReferralStat.referral_id,
            func.sum(case((ReferralStat.event_type == "impression", 1), else_=0)),
            func.sum(case((ReferralStat.event_type == "click", 1), else_=0)),
        )
        .where(ReferralStat.referral_id.in_(ids))
        .group_by(ReferralStat.referral_id)
    )
    async with get_or_use_session(db) as _db:
        rows = (await _db.execute(stmt)).all()
    for referral_id, impressions, clicks in rows:
        counts[int(referral_id)] = {"impressions": int(impressions or 0), "clicks": int(clicks or 0)}
    return counts
