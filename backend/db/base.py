import logging

from db.session import Base, engine
from db.models.audit_log import AuditLogEntry
from db.models.card import Card
from db.models.record import Record
from db.models.referral import Referral, ReferralStat
from db.models.wallet_card import WalletCard

logger = logging.getLogger("creditodds.db")

# Importing the models registers their tables on Base.metadata
MODELS = (Card, Record, Referral, ReferralStat, WalletCard, AuditLogEntry)


async def initialize_database():
    """Create missing tables. Card rows come from the catalog sync, not here."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Schema ready: {', '.join(model.__tablename__ for model in MODELS)}")
