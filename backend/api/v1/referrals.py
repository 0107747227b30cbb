from fastapi import APIRouter, Depends, Request
from schemas.referral_schema import ReferralCreate, ReferralEventCreate
from schemas.user_schema import CurrentUser
from api.dependencies import get_current_user, get_client_ip
from db.session import get_db_session
from sqlalchemy.ext.asyncio import AsyncSession
from services.referral_service import get_referral_overview, create_referral, delete_user_referral
from services.referral_stats_service import record_referral_event
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/referrals")
@timeit()
async def list_referrals(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_referral_overview(current_user, db))

@router.post("/referrals")
@timeit()
async def submit_referral(payload: ReferralCreate, request: Request, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await create_referral(payload, current_user, get_client_ip(request), db))

@router.delete("/referrals")
@timeit()
async def remove_referral(referral_id: int, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await delete_user_referral(referral_id, current_user, db))

@router.post("/referral-stats")
async def referral_event(event: ReferralEventCreate, db: AsyncSession = Depends(get_db_session)):
    # Always 200: a lost impression must not surface on the page that produced it
    ok = await record_referral_event(event.referral_id, event.event_type, db)
    return no_store_json({"ok": ok})
