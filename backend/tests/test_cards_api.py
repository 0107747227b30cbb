"""
API tests for the public card endpoints.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from conftest import add_card, add_record, add_referral
from core.errors import UpstreamUnavailableError
from services import card_service


class TestAllCards:
    @pytest.mark.asyncio
    async def test_cards_merge_store_and_stats(self, client, db_session, catalog):
        card = await add_card(db_session)
        await add_record(db_session, card)
        await add_record(db_session, card, result=False)

        response = await client.get("/cards")

        assert response.status_code == 200
        cards = {c["slug"]: c for c in response.json()}
        csp = cards["chase-sapphire-preferred"]
        assert csp["card_id"] == card.card_id
        assert csp["approved_count"] == 1
        assert csp["rejected_count"] == 1
        assert csp["total_records"] == 2
        assert csp["card_image_link"] == "chase-sapphire-preferred.png"
        assert response.headers["cache-control"] == "public, max-age=60"
        # No store row: catalog id and zero counts
        assert cards["discover-it"]["card_id"] == "discover-it"
        assert cards["discover-it"]["total_records"] == 0

    @pytest.mark.asyncio
    async def test_catalog_unavailable(self, client):
        failing = AsyncMock(side_effect=UpstreamUnavailableError("Card catalog is unavailable"))
        with patch("services.catalog_service.fetch_catalog", new=failing):
            response = await client.get("/cards")
        assert response.status_code == 503
        assert response.json()["error"] == "upstream_unavailable"

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_catalog(self, client, catalog):
        failing = AsyncMock(side_effect=RuntimeError("connection refused"))
        with patch.object(card_service, "load_store_snapshot", new=failing):
            response = await client.get("/cards")
        assert response.status_code == 200
        assert all(c["total_records"] == 0 for c in response.json())


class TestCardDetail:
    @pytest.mark.asyncio
    async def test_card_detail(self, client, db_session, catalog, user):
        card = await add_card(db_session, apply_link="https://apply.example/csp")
        await add_record(db_session, card, credit_score=700)
        await add_record(db_session, card, credit_score=741)
        await add_referral(db_session, card, user.subject_id, link="APPROVED1", admin_approved=True)
        await add_referral(db_session, card, "someone-else", link="PENDING1")

        response = await client.get("/card", params={"card_name": "Chase Sapphire Preferred"})

        assert response.status_code == 200
        body = response.json()
        assert body["card_id"] == card.card_id
        assert body["approved_count"] == 2
        assert body["approved_median_credit_score"] == 721
        assert body["apply_link"] == "https://apply.example/csp"
        assert [r["referral_link"] for r in body["referrals"]] == ["APPROVED1"]

    @pytest.mark.asyncio
    async def test_card_detail_by_slug(self, client, db_session, catalog):
        card = await add_card(db_session)
        response = await client.get("/card", params={"card_name": "chase-sapphire-preferred"})
        assert response.status_code == 200
        assert response.json()["card_id"] == card.card_id

    @pytest.mark.asyncio
    async def test_card_not_in_catalog(self, client, catalog):
        response = await client.get("/card", params={"card_name": "Nonexistent Card"})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_card_without_store_row(self, client, catalog):
        response = await client.get("/card", params={"card_name": "Discover it Cash Back"})
        assert response.status_code == 200
        body = response.json()
        assert body["total_records"] == 0
        assert body["approved_median_income"] is None
        assert body["referrals"] == []

    @pytest.mark.asyncio
    async def test_missing_card_name(self, client, catalog):
        response = await client.get("/card")
        assert response.status_code == 400
        assert response.json()["error"] == "validation"


class TestGraphs:
    @pytest.mark.asyncio
    async def test_graphs(self, client, db_session, catalog):
        card = await add_card(db_session, card_name="American Express Gold", slug=None)
        await add_record(db_session, card, credit_score=690, listed_income=60000, length_credit=3, starting_credit_limit=5000)
        await add_record(db_session, card, result=False, credit_score=580, listed_income=25000, length_credit=1)

        response = await client.get("/graphs", params={"card_name": "American Express Gold Card"})

        assert response.status_code == 200
        body = response.json()
        assert body["credit_score_vs_income"]["accepted"] == [[690, 60000]]
        assert body["credit_score_vs_income"]["rejected"] == [[580, 25000]]
        assert body["length_credit_vs_credit_score"]["rejected"] == [[1, 580]]
        assert body["income_vs_starting_credit_limit"] == [[60000, 5000]]

    @pytest.mark.asyncio
    async def test_graphs_unknown_card(self, client, catalog):
        response = await client.get("/graphs", params={"card_name": "Nonexistent Card"})
        assert response.status_code == 404


class TestConcurrentLoad:
    @pytest.mark.asyncio
    async def test_store_load_finishes_before_catalog_error(self, db_session):
        finished = []

        async def slow_snapshot(db=None):
            await asyncio.sleep(0.05)
            finished.append(True)
            return [], {}

        failing = AsyncMock(side_effect=UpstreamUnavailableError("Card catalog is unavailable"))
        with patch("services.catalog_service.fetch_catalog", new=failing), \
                patch.object(card_service, "load_store_snapshot", new=slow_snapshot):
            with pytest.raises(UpstreamUnavailableError):
                await card_service.get_all_cards(db_session)

        assert finished == [True]


class TestCardNameRequired:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/card", "/graphs"])
    async def test_empty_card_name(self, client, catalog, path):
        response = await client.get(path, params={"card_name": ""})
        assert response.status_code == 400
        assert response.json() == {"error": "validation", "detail": "card_name is required"}
