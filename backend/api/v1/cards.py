from fastapi import APIRouter, Depends
from db.session import get_db_session
from sqlalchemy.ext.asyncio import AsyncSession
from services.card_service import get_all_cards, get_card, get_card_graphs
from utils.responses import public_json
from utils.timing import timeit

router = APIRouter()

@router.get("/cards")
@timeit("all_cards")
async def all_cards(db: AsyncSession = Depends(get_db_session)):
    return public_json(await get_all_cards(db))

@router.get("/card")
@timeit("card_by_name")
async def card_by_name(card_name: str, db: AsyncSession = Depends(get_db_session)):
    return public_json(await get_card(card_name, db))

@router.get("/graphs")
@timeit("card_graphs")
async def card_graphs(card_name: str, db: AsyncSession = Depends(get_db_session)):
    return public_json(await get_card_graphs(card_name, db))
