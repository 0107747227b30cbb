"""
Tests for referral eligibility, the fraud guard and engagement counting.
"""
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from conftest import add_card, add_record, add_referral, add_wallet_card
from core.errors import ConflictError, ForbiddenError
from db.models.referral import Referral, ReferralStat
from schemas.referral_schema import ReferralCreate
from services.referral_service import create_referral, get_referral_overview, is_eligible
from services.referral_stats_service import get_engagement_counts, record_referral_event


class TestEligibility:
    @pytest.mark.asyncio
    async def test_record_or_wallet_makes_eligible(self, db_session, user):
        recorded = await add_card(db_session)
        held = await add_card(db_session, card_name="Discover it Cash Back", slug="discover-it")
        unrelated = await add_card(db_session, card_name="Bilt Mastercard", slug="bilt")
        await add_record(db_session, recorded, submitter_id=user.subject_id)
        await add_wallet_card(db_session, held, user.subject_id)

        assert await is_eligible(user, recorded.card_id, db_session) is True
        assert await is_eligible(user, held.card_id, db_session) is True
        assert await is_eligible(user, unrelated.card_id, db_session) is False

    @pytest.mark.asyncio
    async def test_existing_referral_closes_card(self, db_session, user):
        card = await add_card(db_session)
        await add_wallet_card(db_session, card, user.subject_id)
        await add_referral(db_session, card, user.subject_id)

        assert await is_eligible(user, card.card_id, db_session) is False

    @pytest.mark.asyncio
    async def test_overview_splits_submitted_and_open(self, db_session, user):
        referred = await add_card(db_session, card_referral_link="https://bank.example/refer/")
        open_card = await add_card(db_session, card_name="Discover it Cash Back", slug="discover-it")
        await add_wallet_card(db_session, referred, user.subject_id)
        await add_record(db_session, open_card, submitter_id=user.subject_id)
        referral = await add_referral(db_session, referred, user.subject_id)
        await record_referral_event(referral.referral_id, "impression", db_session)
        await record_referral_event(referral.referral_id, "click", db_session)

        overview = await get_referral_overview(user, db_session)

        submitted = overview["submitted"]
        assert len(submitted) == 1
        assert submitted[0]["referral_id"] == referral.referral_id
        assert submitted[0]["impressions"] == 1
        assert submitted[0]["clicks"] == 1
        assert submitted[0]["card_referral_link"] == "https://bank.example/refer/"
        assert [c["card_id"] for c in overview["open"]] == [open_card.card_id]


class TestFraudGuard:
    @pytest.mark.asyncio
    async def test_link_reuse_across_accounts(self, db_session, user, other_user):
        card_5 = await add_card(db_session)
        card_6 = await add_card(db_session, card_name="Discover it Cash Back", slug="discover-it")
        await add_wallet_card(db_session, card_5, user.subject_id)
        await add_wallet_card(db_session, card_5, other_user.subject_id)
        await add_wallet_card(db_session, card_6, other_user.subject_id)

        await create_referral(ReferralCreate(card_id=card_5.card_id, referral_link="ABC123"), user, db=db_session)

        with pytest.raises(ConflictError):
            await create_referral(ReferralCreate(card_id=card_5.card_id, referral_link="ABC123"), other_user, db=db_session)

        created = await create_referral(ReferralCreate(card_id=card_6.card_id, referral_link="ABC123"), other_user, db=db_session)
        assert created["card_id"] == card_6.card_id

        total = (await db_session.execute(select(func.count(Referral.referral_id)))).scalar()
        assert total == 2

    @pytest.mark.asyncio
    async def test_second_referral_same_card(self, db_session, user):
        card = await add_card(db_session)
        await add_wallet_card(db_session, card, user.subject_id)
        await create_referral(ReferralCreate(card_id=card.card_id, referral_link="FIRST-LINK"), user, db=db_session)

        with pytest.raises(ConflictError):
            await create_referral(ReferralCreate(card_id=card.card_id, referral_link="SECOND-LINK"), user, db=db_session)

    @pytest.mark.asyncio
    async def test_same_link_same_user_other_card(self, db_session, user):
        first = await add_card(db_session)
        second = await add_card(db_session, card_name="Discover it Cash Back", slug="discover-it")
        await add_wallet_card(db_session, first, user.subject_id)
        await add_wallet_card(db_session, second, user.subject_id)

        await create_referral(ReferralCreate(card_id=first.card_id, referral_link="MYCODE"), user, db=db_session)
        created = await create_referral(ReferralCreate(card_id=second.card_id, referral_link="MYCODE"), user, db=db_session)

        assert created["referral_link"] == "MYCODE"

    @pytest.mark.asyncio
    async def test_not_eligible(self, db_session, user):
        card = await add_card(db_session)
        with pytest.raises(ForbiddenError):
            await create_referral(ReferralCreate(card_id=card.card_id, referral_link="ABC123"), user, db=db_session)

    @pytest.mark.asyncio
    async def test_submit_respects_eligibility(self, db_session, user):
        card = await add_card(db_session)
        await add_wallet_card(db_session, card, user.subject_id)
        with patch("services.referral_service.is_eligible", new=AsyncMock(return_value=False)):
            with pytest.raises(ForbiddenError):
                await create_referral(ReferralCreate(card_id=card.card_id, referral_link="ABC123"), user, db=db_session)

    @pytest.mark.asyncio
    async def test_race_is_caught_by_unique_constraint(self, db_session, user, other_user):
        card = await add_card(db_session)
        await add_wallet_card(db_session, card, other_user.subject_id)
        await add_referral(db_session, card, user.subject_id, link="RACED")

        # Simulate a concurrent insert that happened after the count ran
        with patch("services.referral_service.count_conflicting_referrals", return_value=0):
            with pytest.raises(ConflictError):
                await create_referral(ReferralCreate(card_id=card.card_id, referral_link="RACED"), other_user, db=db_session)


class TestReferralApi:
    @pytest.mark.asyncio
    async def test_submit_and_delete(self, client, db_session, login, user):
        card = await add_card(db_session)
        await add_record(db_session, card, submitter_id=user.subject_id)
        login(user)

        response = await client.post(
            "/referrals", json={"card_id": card.card_id, "referral_link": "https://bank.example/r/abc"}
        )
        assert response.status_code == 200
        referral_id = response.json()["referral_id"]
        await record_referral_event(referral_id, "click", db_session)

        response = await client.delete("/referrals", params={"referral_id": referral_id})

        assert response.status_code == 200
        assert await db_session.get(Referral, referral_id) is None
        stats = (await db_session.execute(select(func.count(ReferralStat.id)))).scalar()
        assert stats == 0

    @pytest.mark.asyncio
    async def test_duplicate_is_409(self, client, db_session, login, user, other_user):
        card = await add_card(db_session)
        await add_wallet_card(db_session, card, other_user.subject_id)
        await add_referral(db_session, card, user.subject_id, link="TAKEN")
        login(other_user)

        response = await client.post("/referrals", json={"card_id": card.card_id, "referral_link": "TAKEN"})

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    @pytest.mark.asyncio
    async def test_ineligible_is_403(self, client, db_session, login, user):
        card = await add_card(db_session)
        login(user)
        response = await client.post("/referrals", json={"card_id": card.card_id, "referral_link": "ABC123"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_someone_elses_referral(self, client, db_session, login, user, other_user):
        card = await add_card(db_session)
        referral = await add_referral(db_session, card, other_user.subject_id)
        login(user)

        response = await client.delete("/referrals", params={"referral_id": referral.referral_id})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_overview(self, client, db_session, login, user):
        card = await add_card(db_session)
        await add_wallet_card(db_session, card, user.subject_id)
        login(user)

        response = await client.get("/referrals")

        assert response.status_code == 200
        assert response.json() == {
            "submitted": [],
            "open": [{"card_id": card.card_id, "card_name": card.card_name, "card_image_link": None}],
        }


class TestEngagement:
    @pytest.mark.asyncio
    async def test_impression_then_click(self, db_session, user):
        card = await add_card(db_session)
        referral = await add_referral(db_session, card, user.subject_id)

        assert await record_referral_event(referral.referral_id, "impression", db_session) is True
        assert await record_referral_event(referral.referral_id, "click", db_session) is True

        counts = await get_engagement_counts([referral.referral_id], db_session)
        assert counts == {referral.referral_id: {"impressions": 1, "clicks": 1}}

    @pytest.mark.asyncio
    async def test_unknown_referral_does_not_raise(self, db_session):
        assert await record_referral_event(424242, "click", db_session) is False

    @pytest.mark.asyncio
    async def test_counts_default_to_zero(self, db_session):
        assert await get_engagement_counts([5], db_session) == {5: {"impressions": 0, "clicks": 0}}

    @pytest.mark.asyncio
    async def test_event_endpoint(self, client, db_session, user):
        card = await add_card(db_session)
        referral = await add_referral(db_session, card, user.subject_id)

        response = await client.post("/referral-stats", json={"referral_id": referral.referral_id, "event_type": "impression"})
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        response = await client.post("/referral-stats", json={"referral_id": 999999, "event_type": "click"})
        assert response.status_code == 200
        assert response.json() == {"ok": False}

    @pytest.mark.asyncio
    async def test_event_endpoint_rejects_unknown_type(self, client):
        response = await client.post("/referral-stats", json={"referral_id": 1, "event_type": "hover"})
        assert response.status_code == 400
