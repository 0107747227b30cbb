from typing import Any, Dict, Mapping
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.record import Record
from db.models.referral import Referral
from db.models.wallet_card import WalletCard
from db.session import get_or_use_session
from schemas.user_schema import CurrentUser

logger = logging.getLogger(__name__)


def display_username(claims: Mapping[str, Any]) -> str:
    """Best available handle from identity claims; falls back to 'User'."""
    email = claims.get("email") or ""
    return (
        claims.get("name")
        or claims.get("preferred_username")
        or (email.split("@")[0] if email else "")
        or "User"
    )


async def get_profile(current_user: CurrentUser, db: AsyncSession = None) -> Dict[str, Any]:
    subject_id = current_user.subject_id
    async with get_or_use_session(db) as _db:
        records = await _db.execute(
            select(func.count(Record.record_id)).where(Record.submitter_id == subject_id, Record.active.is_(True))
        )
        records_count = int(records.scalar() or 0)
        referrals = await _db.execute(select(func.count(Referral.referral_id)).where(Referral.submitter_id == subject_id))
        referrals_count = int(referrals.scalar() or 0)
        wallet = await _db.execute(select(func.count(WalletCard.id)).where(WalletCard.user_id == subject_id))
        wallet_count = int(wallet.scalar() or 0)

    return {
        "subject_id": subject_id,
        "username": display_username(current_user.claims),
        "email": current_user.email or "",
        "is_admin": current_user.is_admin,
        "records_count": records_count,
        "referrals_count": referrals_count,
        "wallet_count": wallet_count,
    }
