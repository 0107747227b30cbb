from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import ConflictError, NotFoundError
from db.models.card import Card
from db.models.record import Record
from db.session import get_or_use_session
from schemas.record_schema import RecordCreate
from schemas.user_schema import CurrentUser
from utils.db import safe_commit
from utils.serialization import model_to_dict

logger = logging.getLogger(__name__)


async def get_user_records(current_user: CurrentUser, db: AsyncSession = None) -> List[Dict[str, Any]]:
    """The caller's active records with card name and image, newest first."""
    stmt = (
        select(Record, Card.card_name, Card.card_image_link)
        .join(Card, Card.card_id == Record.card_id)
        .where(Record.submitter_id == current_user.subject_id, Record.active.is_(True))
        .order_by(Record.submit_datetime.desc(), Record.record_id.desc())
    )
    async with get_or_use_session(db) as _db:
        rows = (await _db.execute(stmt)).all()
    records = []
    for record, card_name, card_image_link in rows:
        item = model_to_dict(record)
        item["card_name"] = card_name
        item["card_image_link"] = card_image_link
        records.append(item)
    return records


async def count_active_records(submitter_id: str, card_id: Optional[int] = None, db: AsyncSession = None) -> int:
    stmt = select(func.count(Record.record_id)).where(
        Record.submitter_id == submitter_id, Record.active.is_(True)
    )
    if card_id is not None:
        stmt = stmt.where(Record.card_id == card_id)
    async with get_or_use_session(db) as _db:
        return int((await _db.execute(stmt)).scalar() or 0)


async def create_record(
    payload: RecordCreate,
    current_user: CurrentUser,
    ip_address: Optional[str] = None,
    db: AsyncSession = None,
) -> Dict[str, Any]:
    async with get_or_use_session(db) as _db:
        card = await _db.get(Card, payload.card_id)
        if card is None:
            raise NotFoundError(f"Card not found: {payload.card_id}")

        if await count_active_records(current_user.subject_id, payload.card_id, _db):
            raise ConflictError("You have already submitted a record for this card")

        record = Record(
            **payload.to_record_values(),
            submitter_id=current_user.subject_id,
            submitter_ip_address=ip_address,
            admin_review=not settings.RECORDS_REQUIRE_REVIEW,
            active=True,
        )
        _db.add(record)
        await safe_commit(_db, conflict_message="Record could not be saved")
        await _db.refresh(record)

    logger.info(f"Record {record.record_id} submitted for card {record.card_id} (result={record.result})")
    return model_to_dict(record)


async def delete_user_record(record_id: int, current_user: CurrentUser, db: AsyncSession = None) -> Dict[str, Any]:
    """Soft delete; the row stays for moderation but leaves every public view."""
    async with get_or_use_session(db) as _db:
        record = await _db.get(Record, record_id)
        # Someone else's record looks the same as a missing one
        if record is None or record.submitter_id != current_user.subject_id or not record.active:
            raise NotFoundError("Record not found")
        record.active = False
        await safe_commit(_db)
    logger.info(f"Record {record_id} deactivated by its submitter")
    return {"message": "Record deleted", "record_id": record_id}
