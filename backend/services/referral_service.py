"""User referrals: eligibility, the submission fraud guard, and removal."""
from typing import Any, Dict, List, Optional, Set
import logging

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, ForbiddenError, NotFoundError
from db.models.card import Card
from db.models.record import Record
from db.models.referral import Referral, ReferralStat
from db.models.wallet_card import WalletCard
from db.session import get_or_use_session
from schemas.referral_schema import ReferralCreate
from schemas.user_schema import CurrentUser
from services.referral_stats_service import get_engagement_counts
from utils.db import safe_commit
from utils.serialization import json_safe_value

logger = logging.getLogger(__name__)

DUPLICATE_REFERRAL_MESSAGE = (
    "User has already submitted a referral for this card "
    "or this referral link has been used by another account."
)


async def _related_card_ids(subject_id: str, db: AsyncSession) -> Set[int]:
    """Cards the user has a record for or holds in their wallet."""
    record_cards = select(Record.card_id).where(Record.submitter_id == subject_id, Record.active.is_(True))
    wallet_cards = select(WalletCard.card_id).where(WalletCard.user_id == subject_id)
    ids = set((await db.execute(record_cards)).scalars().all())
    ids.update((await db.execute(wallet_cards)).scalars().all())
    return ids


async def _referred_card_ids(subject_id: str, db: AsyncSession) -> Set[int]:
    stmt = select(Referral.card_id).where(Referral.submitter_id == subject_id)
    return set((await db.execute(stmt)).scalars().all())


async def is_eligible(current_user: CurrentUser, card_id: int, db: AsyncSession = None) -> bool:
    async with get_or_use_session(db) as _db:
        related = await _related_card_ids(current_user.subject_id, _db)
        if card_id not in related:
            return False
        return card_id not in await _referred_card_ids(current_user.subject_id, _db)


async def get_referral_overview(current_user: CurrentUser, db: AsyncSession = None) -> Dict[str, List[Dict[str, Any]]]:
    """Submitted referrals with engagement counts, and the cards still open for one."""
    subject_id = current_user.subject_id
    async with get_or_use_session(db) as _db:
        submitted_rows = (
            await _db.execute(
                select(Referral, Card.card_name, Card.card_image_link, Card.card_referral_link)
                .join(Card, Card.card_id == Referral.card_id)
                .where(Referral.submitter_id == subject_id)
                .order_by(Referral.submit_datetime.desc(), Referral.referral_id.desc())
            )
        ).all()
        open_ids = await _related_card_ids(subject_id, _db) - {r.card_id for r, *_ in submitted_rows}
        open_rows = []
        if open_ids:
            open_rows = (
                await _db.execute(
                    select(Card.card_id, Card.card_name, Card.card_image_link)
                    .where(Card.card_id.in_(open_ids))
                    .order_by(Card.card_name)
                )
            ).mappings().all()
        counts = await get_engagement_counts([r.referral_id for r, *_ in submitted_rows], _db)

    submitted = []
    for referral, card_name, card_image_link, card_referral_link in submitted_rows:
        submitted.append(
            {
                "referral_id": referral.referral_id,
                "card_id": referral.card_id,
                "card_name": card_name,
                "card_image_link": card_image_link,
                "referral_link": referral.referral_link,
                "card_referral_link": card_referral_link,
                "admin_approved": bool(referral.admin_approved),
                "submit_datetime": json_safe_value(referral.submit_datetime),
                **counts.get(referral.referral_id, {"impressions": 0, "clicks": 0}),
            }
        )
    return {"submitted": submitted, "open": [dict(row) for row in open_rows]}


async def count_conflicting_referrals(card_id: int, submitter_id: str, referral_link: str, db: AsyncSession) -> int:
    """Same card and submitter, or same card and link from a different submitter."""
    stmt = select(func.count(Referral.referral_id)).where(
        or_(
            and_(Referral.card_id == card_id, Referral.submitter_id == submitter_id),
            and_(
                Referral.card_id == card_id,
                Referral.referral_link == referral_link,
                Referral.submitter_id != submitter_id,
            ),
        )
    )
    return int((await db.execute(stmt)).scalar() or 0)


async def create_referral(
    payload: ReferralCreate,
    current_user: CurrentUser,
    ip_address: Optional[str] = None,
    db: AsyncSession = None,
) -> Dict[str, Any]:
    subject_id = current_user.subject_id
    async with get_or_use_session(db) as _db:
        if await _db.get(Card, payload.card_id) is None:
            raise NotFoundError(f"Card not found: {payload.card_id}")

        if not await is_eligible(current_user, payload.card_id, _db):
            if payload.card_id in await _referred_card_ids(subject_id, _db):
                raise ConflictError(DUPLICATE_REFERRAL_MESSAGE)
            raise ForbiddenError("Submit a record or add the card to your wallet before sharing a referral")

        if await count_conflicting_referrals(payload.card_id, subject_id, payload.referral_link, _db) > 0:
            logger.info(f"Referral rejected by fraud guard for card {payload.card_id}")
            raise ConflictError(DUPLICATE_REFERRAL_MESSAGE)

        referral = Referral(
            card_id=payload.card_id,
            submitter_id=subject_id,
            referral_link=payload.referral_link,
            submitter_ip_address=ip_address,
            admin_approved=False,
        )
        _db.add(referral)
        # Unique constraints catch a concurrent submission that passed the count
        await safe_commit(_db, conflict_message=DUPLICATE_REFERRAL_MESSAGE)
        await _db.refresh(referral)

    logger.info(f"Referral {referral.referral_id} submitted for card {referral.card_id}")
    return {
        "referral_id": referral.referral_id,
        "card_id": referral.card_id,
        "referral_link": referral.referral_link,
        "admin_approved": False,
    }


async def delete_referral_cascade(referral_id: int, db: AsyncSession) -> None:
    """Remove a referral and its engagement rows; the caller commits."""
    await db.execute(delete(ReferralStat).where(ReferralStat.referral_id == referral_id))
    await db.execute(delete(Referral).where(Referral.referral_id == referral_id))


async def delete_user_referral(referral_id: int, current_user: CurrentUser, db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as _db:
        referral = await _db.get(Referral, referral_id)
        if referral is None or referral.submitter_id != current_user.subject_id:
            raise NotFoundError("Referral not found")
        await delete_referral_cascade(referral_id, _db)
        await safe_commit(_db)
    logger.info(f"Referral {referral_id} deleted by its submitter")
    return {"message": "Referral deleted successfully", "referral_id": referral_id}
