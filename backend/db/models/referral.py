from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func
from db.session import Base

REFERRAL_EVENT_TYPES = ("impression", "click")


class Referral(Base):
    __tablename__ = "referrals"

    referral_id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("cards.card_id"), index=True, nullable=False)
    submitter_id = Column(String(128), index=True, nullable=False)
    referral_link = Column(String(250), nullable=False)
    submit_datetime = Column(DateTime(timezone=True), server_default=func.now())
    submitter_ip_address = Column(String(45), nullable=True)
    admin_approved = Column(Boolean, default=False, nullable=False)
    __table_args__ = (
        # One referral per (card, submitter); a link can't be reused on the same card
        UniqueConstraint("card_id", "submitter_id", name="uq_referral_card_submitter"),
        UniqueConstraint("card_id", "referral_link", name="uq_referral_card_link"),
        Index("ix_referrals_approved_submitted", "admin_approved", "submit_datetime"),
    )


class ReferralStat(Base):
    __tablename__ = "referral_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    referral_id = Column(Integer, ForeignKey("referrals.referral_id", ondelete="CASCADE"), index=True, nullable=False)
    event_type = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        Index("ix_referral_stats_referral_event", "referral_id", "event_type"),
    )
