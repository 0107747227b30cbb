"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile

# Settings are read at import time; point them at throwaway resources first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="creditodds-logs-"))

from datetime import date
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from main import app
from api.dependencies import get_current_user
from db.base import Base
from db.models.card import Card
from db.models.record import Record
from db.models.referral import Referral
from db.models.wallet_card import WalletCard
from db.session import get_db_session, get_session_factory
from schemas.user_schema import CurrentUser

# Initialize Faker for test data generation
fake = Faker()

TEST_DATABASE_URL = "sqlite+aiosqlite://"

CATALOG = [
    {
        "card_id": "chase-sapphire-preferred",
        "slug": "chase-sapphire-preferred",
        "name": "Chase Sapphire Preferred",
        "bank": "Chase",
        "image": "chase-sapphire-preferred.png",
        "accepting_applications": True,
        "annual_fee": 95,
        "tags": ["travel"],
    },
    {
        "card_id": "amex-gold-card",
        "slug": "amex-gold-card",
        "name": "American Express Gold Card",
        "bank": "American Express",
        "image": "amex-gold.png",
        "accepting_applications": True,
        "annual_fee": 325,
    },
    {
        "card_id": "discover-it",
        "slug": "discover-it",
        "name": "Discover it Cash Back",
        "bank": "Discover",
        "accepting_applications": True,
    },
]


@pytest.fixture()
async def async_engine():
    """Create a fresh in-memory async engine per test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine) -> async_sessionmaker:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


def make_user(subject_id: str = None, admin: bool = False) -> CurrentUser:
    claims = {"sub": subject_id or fake.uuid4(), "email": fake.email()}
    if admin:
        claims["admin"] = True
    return CurrentUser(subject_id=claims["sub"], email=claims["email"], claims=claims, is_admin=admin)


@pytest.fixture()
def user() -> CurrentUser:
    return make_user()


@pytest.fixture()
def other_user() -> CurrentUser:
    return make_user()


@pytest.fixture()
def admin_user() -> CurrentUser:
    return make_user(admin=True)


@pytest.fixture()
def login():
    """Authenticate subsequent requests as the given user."""
    def _login(current_user: CurrentUser):
        app.dependency_overrides[get_current_user] = lambda: current_user
        return current_user
    return _login


@pytest.fixture()
async def client(db_session: AsyncSession, session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTPX async client wired to the FastAPI app with test DB override."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db_session] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture()
def catalog():
    """Serve CATALOG in place of the CDN."""
    with patch("services.catalog_service.fetch_catalog", new=AsyncMock(return_value=[dict(c) for c in CATALOG])) as mock:
        yield mock


async def add_card(db: AsyncSession, **overrides) -> Card:
    values = {"card_name": "Chase Sapphire Preferred", "slug": "chase-sapphire-preferred", "bank": "Chase"}
    values.update(overrides)
    card = Card(**values)
    db.add(card)
    await db.commit()
    await db.refresh(card)
    return card


async def add_record(db: AsyncSession, card: Card, submitter_id: str = None, **overrides) -> Record:
    values = {
        "card_id": card.card_id,
        "submitter_id": submitter_id or fake.uuid4(),
        "credit_score": 720,
        "credit_score_source": 1,
        "result": True,
        "listed_income": 85000,
        "length_credit": 6,
        "starting_credit_limit": 10000,
        "date_applied": date(2024, 5, 1),
        "bank_customer": False,
        "admin_review": True,
        "active": True,
    }
    values.update(overrides)
    if not values["result"]:
        values["starting_credit_limit"] = None
    record = Record(**values)
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def add_referral(db: AsyncSession, card: Card, submitter_id: str, link: str = "REF-ABC123", **overrides) -> Referral:
    referral = Referral(card_id=card.card_id, submitter_id=submitter_id, referral_link=link, **overrides)
    db.add(referral)
    await db.commit()
    await db.refresh(referral)
    return referral


async def add_wallet_card(db: AsyncSession, card: Card, user_id: str) -> WalletCard:
    wallet_card = WalletCard(card_id=card.card_id, user_id=user_id)
    db.add(wallet_card)
    await db.commit()
    await db.refresh(wallet_card)
    return wallet_card


@pytest.fixture()
def record_payload():
    def _payload(card_id: int, **overrides):
        body = {
            "card_id": card_id,
            "credit_score": 735,
            "credit_score_source": 0,
            "result": True,
            "listed_income": 92000,
            "length_credit": 8,
            "starting_credit_limit": 12000,
            "date_applied": "2024-06-01",
            "bank_customer": True,
            "inquiries_3": 0,
            "inquiries_12": 1,
            "inquiries_24": 2,
        }
        body.update(overrides)
        return body
    return _payload
