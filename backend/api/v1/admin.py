from typing import List
from fastapi import APIRouter, BackgroundTasks, Depends
from schemas.admin_schema import AdminReferralUpdate
from schemas.user_schema import CurrentUser
from api.dependencies import admin_required
from db.session import get_db_session, get_session_factory
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from services.admin_service import (
    get_dashboard_stats,
    list_records,
    delete_record,
    list_referrals,
    update_referral,
    delete_referral,
)
from services.audit_service import AuditEvent, list_audit_log, write_audit_event
from services.card_sync_service import sync_cards
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter(prefix="/admin")


def _emit(background_tasks: BackgroundTasks, events: List[AuditEvent], session_factory: async_sessionmaker) -> None:
    # Runs after the response is sent, so the mutation has already committed
    for event in events:
        background_tasks.add_task(write_audit_event, event, session_factory)


@router.get("/stats")
@timeit()
async def admin_stats(current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_dashboard_stats(db))

@router.get("/records")
@timeit()
async def admin_records(page: int = 1, size: int = 50, current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_records(page=page, size=size, db=db))

@router.delete("/records")
@timeit()
async def admin_delete_record(
    record_id: int,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    body, events = await delete_record(record_id, current_user, db)
    _emit(background_tasks, events, session_factory)
    return no_store_json(body)

@router.get("/referrals")
@timeit()
async def admin_referrals(page: int = 1, size: int = 50, pending: bool = False, current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_referrals(page=page, size=size, pending_only=pending, db=db))

@router.put("/referrals")
@timeit()
async def admin_update_referral(
    update: AdminReferralUpdate,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    body, events = await update_referral(update, current_user, db)
    _emit(background_tasks, events, session_factory)
    return no_store_json(body)

@router.delete("/referrals")
@timeit()
async def admin_delete_referral(
    referral_id: int,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    body, events = await delete_referral(referral_id, current_user, db)
    _emit(background_tasks, events, session_factory)
    return no_store_json(body)

@router.get("/audit")
@timeit()
async def admin_audit(page: int = 1, size: int = 50, current_user: CurrentUser = Depends(admin_required), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_audit_log(page=page, size=size, db=db))

@router.post("/cards/sync")
@timeit()
async def admin_sync_cards(
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    body, events = await sync_cards(current_user, db)
    _emit(background_tasks, events, session_factory)
    return no_store_json(body)
