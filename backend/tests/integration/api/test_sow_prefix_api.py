"""
Integration tests for the SOW prefix API.

WHY: The prefix may change freely until the first numbered proposal
uses it; after that every change must be refused.
"""

import pytest
from httpx import AsyncClient

from proposal_engine.core.config import settings


BASE = f"{settings.API_PREFIX}/sow-prefix"


class TestSowPrefixAPI:
    """Prefix read and set."""

    @pytest.mark.asyncio
    async def test_get_without_prefix(self, client: AsyncClient, owner_headers):
        response = await client.get(BASE, headers=owner_headers)

        assert response.status_code == 200
        assert response.json() == {"prefix": None, "locked": False, "next_sow_number": "1"}

    @pytest.mark.asyncio
    async def test_set_and_change_before_use(self, client: AsyncClient, owner_headers):
        first = await client.put(BASE, json={"prefix": "031"}, headers=owner_headers)
        second = await client.put(BASE, json={"prefix": "099"}, headers=owner_headers)

        assert first.json()["next_sow_number"] == "0311"
        assert second.status_code == 200
        assert second.json() == {"prefix": "099", "locked": False, "next_sow_number": "0991"}

    @pytest.mark.asyncio
    async def test_locked_after_first_proposal(
        self, client: AsyncClient, owner_headers, sample_proposal_data
    ):
        """
        Test the one-way lock.

        WHY: Changing the prefix after issuing 0311 would make existing
        documents display a number they were never sent with.
        """
        await client.put(BASE, json={"prefix": "031"}, headers=owner_headers)
        await client.post(
            f"{settings.API_PREFIX}/proposals", json=sample_proposal_data, headers=owner_headers
        )

        status = await client.get(BASE, headers=owner_headers)
        rejected = await client.put(BASE, json={"prefix": "099"}, headers=owner_headers)
        same = await client.put(BASE, json={"prefix": "031"}, headers=owner_headers)

        assert status.json() == {"prefix": "031", "locked": True, "next_sow_number": "0312"}
        assert rejected.status_code == 409
        assert rejected.json()["error"] == "PrefixLockedError"
        assert same.status_code == 200

    @pytest.mark.parametrize("prefix", ["", "12a", "12345678901", "٣١"])
    @pytest.mark.asyncio
    async def test_invalid_prefix(self, client: AsyncClient, owner_headers, prefix):
        response = await client.put(BASE, json={"prefix": prefix}, headers=owner_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidPrefixError"

    @pytest.mark.asyncio
    async def test_prefixes_are_per_account(
        self, client: AsyncClient, owner_headers, other_owner_headers
    ):
        await client.put(BASE, json={"prefix": "031"}, headers=owner_headers)

        response = await client.get(BASE, headers=other_owner_headers)

        assert response.json()["prefix"] is None

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get(BASE)

        assert response.status_code == 401
