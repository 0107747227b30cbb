from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from db.session import Base


class Record(Base):
    __tablename__ = "records"

    record_id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("cards.card_id"), index=True, nullable=False)
    submitter_id = Column(String(128), index=True, nullable=False)
    credit_score = Column(Integer, nullable=False)
    credit_score_source = Column(Integer, nullable=False)
    result = Column(Boolean, nullable=False)
    listed_income = Column(Integer, nullable=False)
    length_credit = Column(Integer, nullable=False)
    # Exactly one of these is populated, chosen by `result` at write time
    starting_credit_limit = Column(Integer, nullable=True)
    reason_denied = Column(String(254), nullable=True)
    date_applied = Column(Date, nullable=False)
    bank_customer = Column(Boolean, default=False, nullable=False)
    inquiries_3 = Column(Integer, nullable=True)
    inquiries_12 = Column(Integer, nullable=True)
    inquiries_24 = Column(Integer, nullable=True)
    submit_datetime = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    submitter_ip_address = Column(String(45), nullable=True)
    admin_review = Column(Boolean, default=False, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    __table_args__ = (
        Index("ix_records_card_review", "card_id", "admin_review", "active"),
        Index("ix_records_submitter_card", "submitter_id", "card_id"),
    )
