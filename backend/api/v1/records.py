from fastapi import APIRouter, Depends, Request
from schemas.record_schema import RecordCreate, record_rules_schema
from schemas.user_schema import CurrentUser
from api.dependencies import get_current_user, get_client_ip
from db.session import get_db_session
from sqlalchemy.ext.asyncio import AsyncSession
from services.record_service import get_user_records, create_record, delete_user_record
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/records/schema")
async def records_schema():
    """Submission rules, published so the web form checks the same bounds."""
    return record_rules_schema()

@router.get("/records")
@timeit()
async def list_records(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_user_records(current_user, db))

@router.post("/records")
@timeit()
async def submit_record(payload: RecordCreate, request: Request, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await create_record(payload, current_user, get_client_ip(request), db))

@router.delete("/records")
@timeit()
async def remove_record(record_id: int, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await delete_user_record(record_id, current_user, db))
