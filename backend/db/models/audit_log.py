from sqlalchemy import Column, String, DateTime, Integer, Index
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from db.session import Base


class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_id = Column(String(128), index=True, nullable=False)
    action = Column(String(50), index=True, nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )
