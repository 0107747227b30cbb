from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from db.session import Base


class WalletCard(Base):
    __tablename__ = "wallet_cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), index=True, nullable=False)
    card_id = Column(Integer, ForeignKey("cards.card_id"), index=True, nullable=False)
    acquired_month = Column(Integer, nullable=True)
    acquired_year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_wallet_user_card"),
    )
