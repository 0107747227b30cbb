from fastapi import APIRouter, Depends
from schemas.user_schema import CurrentUser
from api.dependencies import get_current_user
from db.session import get_db_session
from sqlalchemy.ext.asyncio import AsyncSession
from services.user_service import get_profile
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/profile")
@timeit()
async def read_profile(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_profile(current_user, db))
