from fastapi import APIRouter, Depends
from schemas.user_schema import CurrentUser, WalletCardCreate, WalletCardUpdate
from api.dependencies import get_current_user
from db.session import get_db_session
from sqlalchemy.ext.asyncio import AsyncSession
from services.wallet_service import get_wallet, add_wallet_card, update_wallet_card, remove_wallet_card
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/wallet")
@timeit()
async def list_wallet(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_wallet(current_user, db))

@router.post("/wallet")
@timeit()
async def wallet_add(payload: WalletCardCreate, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await add_wallet_card(payload, current_user, db))

@router.put("/wallet")
@timeit()
async def wallet_update(card_id: int, payload: WalletCardUpdate, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await update_wallet_card(card_id, payload, current_user, db))

@router.delete("/wallet")
@timeit()
async def wallet_remove(card_id: int, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await remove_wallet_card(card_id, current_user, db))
