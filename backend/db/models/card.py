from sqlalchemy import Column, String, Integer, Boolean, DateTime, Index
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from db.session import Base


class Card(Base):
    __tablename__ = "cards"

    card_id = Column(Integer, primary_key=True, autoincrement=True)
    card_name = Column(String(255), index=True, nullable=False)
    # Catalog slug written by the catalog sync; stable join key with the catalog
    slug = Column(String(255), index=True, nullable=True)
    bank = Column(String(255), nullable=True)
    annual_fee = Column(Integer, nullable=True)
    accepting_applications = Column(Boolean, default=True, nullable=False)
    card_image_link = Column(String(512), nullable=True)
    apply_link = Column(String(1024), nullable=True)
    card_referral_link = Column(String(1024), nullable=True)
    release_date = Column(String(32), nullable=True)
    tags = Column(JSON, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    __table_args__ = (
        Index("ix_cards_bank_name", "bank", "card_name"),
    )
