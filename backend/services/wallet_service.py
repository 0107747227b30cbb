from typing import Any, Dict, List
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError
from db.models.card import Card
from db.models.wallet_card import WalletCard
from db.session import get_or_use_session
from schemas.user_schema import CurrentUser, WalletCardCreate, WalletCardUpdate
from utils.db import safe_commit
from utils.serialization import json_safe_value

logger = logging.getLogger(__name__)

ALREADY_IN_WALLET = "Card is already in your wallet"


def _wallet_item(wallet_card: WalletCard, card: Card) -> Dict[str, Any]:
    return {
        "id": wallet_card.id,
        "card_id": wallet_card.card_id,
        "card_name": card.card_name if card else None,
        "bank": card.bank if card else None,
        "card_image_link": card.card_image_link if card else None,
        "acquired_month": wallet_card.acquired_month,
        "acquired_year": wallet_card.acquired_year,
        "created_at": json_safe_value(wallet_card.created_at),
    }


async def get_wallet(current_user: CurrentUser, db: AsyncSession = None) -> List[Dict[str, Any]]:
    stmt = (
        select(WalletCard, Card)
        .join(Card, Card.card_id == WalletCard.card_id)
        .where(WalletCard.user_id == current_user.subject_id)
        .order_by(Card.card_name)
    )
    async with get_or_use_session(db) as _db:
        rows = (await _db.execute(stmt)).all()
    return [_wallet_item(wallet_card, card) for wallet_card, card in rows]


async def _get_owned(_db: AsyncSession, current_user: CurrentUser, card_id: int) -> WalletCard:
    result = await _db.execute(
        select(WalletCard).where(WalletCard.user_id == current_user.subject_id, WalletCard.card_id == card_id)
    )
    wallet_card = result.scalars().first()
    if wallet_card is None:
        raise NotFoundError("Card is not in your wallet")
    return wallet_card


async def add_wallet_card(payload: WalletCardCreate, current_user: CurrentUser, db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as _db:
        card = await _db.get(Card, payload.card_id)
        if card is None:
            raise NotFoundError(f"Card not found: {payload.card_id}")
        existing = await _db.execute(
            select(WalletCard.id).where(
                WalletCard.user_id == current_user.subject_id, WalletCard.card_id == payload.card_id
            )
        )
        if existing.scalar() is not None:
            raise ConflictError(ALREADY_IN_WALLET)
        wallet_card = WalletCard(user_id=current_user.subject_id, **payload.model_dump())
        _db.add(wallet_card)
        await safe_commit(_db, conflict_message=ALREADY_IN_WALLET)
        await _db.refresh(wallet_card)
    logger.info(f"Card {payload.card_id} added to wallet")
    return _wallet_item(wallet_card, card)


async def update_wallet_card(
    card_id: int, payload: WalletCardUpdate, current_user: CurrentUser, db: AsyncSession = None
) -> Dict[str, Any]:
    async with get_or_use_session(db) as _db:
        wallet_card = await _get_owned(_db, current_user, card_id)
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(wallet_card, key, value)
        await safe_commit(_db)
        card = await _db.get(Card, card_id)
    return _wallet_item(wallet_card, card)


async def remove_wallet_card(card_id: int, current_user: CurrentUser, db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as _db:
        wallet_card = await _get_owned(_db, current_user, card_id)
        await _db.delete(wallet_card)
        await safe_commit(_db)
    logger.info(f"Card {card_id} removed from wallet")
    return {"message": "Card removed from wallet", "card_id": card_id}
