"""Admin audit trail.

Admin routes emit an ``AuditEvent`` after their mutation commits; FastAPI runs
``write_audit_event`` as a background task once the response is sent. The sink
opens its own session and never raises: a failed audit write is logged and
the admin action stands.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.models.audit_log import AuditLogEntry
from db.session import get_or_use_session
from utils.serialization import json_safe_value, model_to_dict

logger = logging.getLogger("creditodds.audit")

ACTION_DELETE = "DELETE"
ACTION_APPROVE = "APPROVE"
ACTION_UNAPPROVE = "UNAPPROVE"
ACTION_EDIT = "EDIT"
ACTION_SYNC = "SYNC"

ENTITY_RECORD = "record"
ENTITY_REFERRAL = "referral"
ENTITY_CARD = "card"


@dataclass(frozen=True)
class AuditEvent:
    admin_id: str
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


async def write_audit_event(event: AuditEvent, session_factory: async_sessionmaker) -> bool:
    try:
        async with session_factory() as session:
            session.add(
                AuditLogEntry(
                    admin_id=event.admin_id,
                    action=event.action,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    details=json_safe_value(event.details or {}),
                )
            )
            await session.commit()
        logger.info(f"Audit {event.action} {event.entity_type}:{event.entity_id} by {event.admin_id}")
        return True
    except Exception as e:
        logger.error(f"Failed to write audit event {event.action} {event.entity_type}:{event.entity_id}: {e}")
        return False


async def list_audit_log(page: int = 1, size: int = 50, db: AsyncSession = None) -> Dict[str, Any]:
    page = max(1, int(page or 1))
    size = max(1, min(int(size or 50), 200))
    async with get_or_use_session(db) as _db:
        total = (await _db.execute(select(func.count(AuditLogEntry.id)))).scalar() or 0
        result = await _db.execute(
            select(AuditLogEntry)
            .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        entries = [model_to_dict(entry) for entry in result.scalars().all()]
    total_pages = max(1, (total + size - 1) // size)
    return {"entries": entries, "page": page, "size": size, "total": total, "total_pages": total_pages}
