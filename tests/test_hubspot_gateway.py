"""Tests for the HubSpot source gateway.

Patches httpx.AsyncClient.get -- no real HubSpot calls. Retry waits are
disabled so transient-failure tests run instantly.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from tenacity import wait_none

from src.dealsync.sync.errors import UpstreamFetchError
from src.dealsync.sync.hubspot import HubSpotGateway


def _response(status_code: int, body: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        json=body if body is not None else {},
        request=httpx.Request("GET", "https://api.hubapi.com"),
    )


def _routes(table: dict[str, httpx.Response | Exception]):
    """Fake AsyncClient.get dispatching on URL suffix; unknown URLs are 404."""

    async def fake_get(url, params=None, **kwargs):
        for suffix, outcome in table.items():
            if url.endswith(suffix):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return _response(404)

    return fake_get


DEAL_BODY = {
    "id": "12345",
    "properties": {
        "dealname": "Test Deal",
        "amount": "50000",
        "dealstage": "closedwon",
        "closedate": "2024-12-15T00:00:00Z",
        "hubspot_owner_id": "77",
        "description": "",
    },
}


def _contact_body(contact_id: str, first: str) -> dict:
    return {
        "id": contact_id,
        "properties": {
            "firstname": first,
            "lastname": "Doe",
            "email": f"{first.lower()}@acme.com",
            "jobtitle": "Buyer",
        },
    }


COMPANY_BODY = {
    "id": "701",
    "properties": {"name": "Acme Corp", "website": "https://acme.com", "numberofemployees": "250"},
}


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(HubSpotGateway._get.retry, "wait", wait_none())


@pytest.fixture
def gateway() -> HubSpotGateway:
    return HubSpotGateway(access_token="pat-test", max_contacts=2)


class TestFetchDeal:
    async def test_parses_deal_and_normalizes_stage(self, gateway):
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(200, DEAL_BODY)
        ) as mock_get:
            deal = await gateway.fetch_deal("12345")

        assert deal.id == "12345"
        assert deal.name == "Test Deal"
        assert deal.amount == 50000.0
        assert deal.stage == "Closed Won"
        assert deal.stage_id == "closedwon"
        assert deal.close_date == "2024-12-15T00:00:00Z"
        assert deal.owner_id == "77"
        assert deal.description is None

        url = mock_get.call_args.args[0]
        assert url == "https://api.hubapi.com/crm/v3/objects/deals/12345"
        assert "dealstage" in mock_get.call_args.kwargs["params"]["properties"].split(",")

    async def test_unmapped_stage_passes_through(self, gateway):
        body = {"id": "1", "properties": {"dealname": "Pilot", "dealstage": "98765432"}}
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(200, body)):
            deal = await gateway.fetch_deal("1")

        assert deal.stage == "98765432"
        assert deal.is_canonical_stage is False

    async def test_missing_name_defaults(self, gateway):
        body = {"id": "1", "properties": {"dealstage": "closedwon", "amount": "n/a"}}
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(200, body)):
            deal = await gateway.fetch_deal("1")

        assert deal.name == "Untitled Deal"
        assert deal.amount is None

    async def test_not_found_returns_none(self, gateway):
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(404)):
            assert await gateway.fetch_deal("404") is None

    async def test_auth_failure_raises_without_retry(self, gateway):
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(401)
        ) as mock_get:
            with pytest.raises(UpstreamFetchError):
                await gateway.fetch_deal("12345")

        assert mock_get.call_count == 1

    async def test_transient_failure_is_retried(self, gateway):
        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            side_effect=[_response(503), _response(200, DEAL_BODY)],
        ) as mock_get:
            deal = await gateway.fetch_deal("12345")

        assert deal.id == "12345"
        assert mock_get.call_count == 2

    async def test_persistent_rate_limit_raises_after_three_attempts(self, gateway):
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(429)
        ) as mock_get:
            with pytest.raises(UpstreamFetchError):
                await gateway.fetch_deal("12345")

        assert mock_get.call_count == 3


class TestAssociations:
    async def test_resolves_contacts_and_company(self, gateway):
        routes = _routes(
            {
                "/crm/v3/objects/deals/12345": _response(200, DEAL_BODY),
                "/deals/12345/associations/contacts": _response(
                    200, {"results": [{"toObjectId": 501}, {"toObjectId": 502}, {"toObjectId": 503}]}
                ),
                "/crm/v3/objects/contacts/501": _response(200, _contact_body("501", "Jane")),
                "/crm/v3/objects/contacts/502": _response(200, _contact_body("502", "John")),
                "/crm/v3/objects/contacts/503": _response(200, _contact_body("503", "Jill")),
                "/deals/12345/associations/companies": _response(200, {"results": [{"toObjectId": 701}]}),
                "/crm/v3/objects/companies/701": _response(200, COMPANY_BODY),
            }
        )
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=routes):
            deal = await gateway.fetch_deal_with_associations("12345")

        assert [c.id for c in deal.contacts] == ["501", "502"]
        assert deal.primary_contact.full_name == "Jane Doe"
        assert deal.company.name == "Acme Corp"
        assert deal.company.domain == "https://acme.com"
        assert deal.company.number_of_employees == "250"

    async def test_contact_association_failure_degrades(self, gateway):
        routes = _routes(
            {
                "/crm/v3/objects/deals/12345": _response(200, DEAL_BODY),
                "/deals/12345/associations/contacts": _response(500),
                "/deals/12345/associations/companies": _response(200, {"results": [{"toObjectId": 701}]}),
                "/crm/v3/objects/companies/701": _response(200, COMPANY_BODY),
            }
        )
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=routes):
            deal = await gateway.fetch_deal_with_associations("12345")

        assert deal.contacts == []
        assert deal.company is not None

    async def test_single_contact_failure_is_isolated(self, gateway):
        routes = _routes(
            {
                "/crm/v3/objects/deals/12345": _response(200, DEAL_BODY),
                "/deals/12345/associations/contacts": _response(
                    200, {"results": [{"toObjectId": 501}, {"toObjectId": 502}]}
                ),
                "/crm/v3/objects/contacts/501": httpx.ConnectError("connection refused"),
                "/crm/v3/objects/contacts/502": _response(200, _contact_body("502", "John")),
                "/deals/12345/associations/companies": _response(200, {"results": []}),
            }
        )
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=routes):
            deal = await gateway.fetch_deal_with_associations("12345")

        assert [c.id for c in deal.contacts] == ["502"]
        assert deal.company is None

    async def test_company_failure_degrades(self, gateway):
        routes = _routes(
            {
                "/crm/v3/objects/deals/12345": _response(200, DEAL_BODY),
                "/deals/12345/associations/contacts": _response(200, {"results": []}),
                "/deals/12345/associations/companies": _response(200, {"results": [{"toObjectId": 701}]}),
                "/crm/v3/objects/companies/701": _response(403),
            }
        )
        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=routes):
            deal = await gateway.fetch_deal_with_associations("12345")

        assert deal.company is None
        assert deal.id == "12345"

    async def test_missing_deal_skips_associations(self, gateway):
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_response(404)
        ) as mock_get:
            assert await gateway.fetch_deal_with_associations("404") is None

        assert mock_get.call_count == 1
