"""HubSpot source gateway -- reads deals, contacts, and companies over the CRM v3/v4 REST API.

Implements SourceGateway with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s) matching the pattern used for every other external HTTP API in
this codebase. Only transient failures (429, 5xx, connect errors, timeouts)
are retried; a 404 is "not found" and returns None.

Association resolution is fault-isolated: contacts and company are fetched in
independent lookups, and a failure in either degrades to an empty/absent
association instead of failing the whole deal fetch.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.dealsync.sync.errors import UpstreamFetchError
from src.dealsync.sync.field_mapping import DEFAULT_STAGE_MAP, normalize_stage
from src.dealsync.sync.schemas import Company, Contact, Deal
from src.dealsync.sync.source import SourceGateway

logger = structlog.get_logger(__name__)

DEAL_PROPERTIES = [
    "dealname",
    "amount",
    "dealstage",
    "closedate",
    "pipeline",
    "hs_object_id",
    "hubspot_owner_id",
    "description",
]

CONTACT_PROPERTIES = ["firstname", "lastname", "email", "phone", "jobtitle", "company"]

COMPANY_PROPERTIES = ["name", "domain", "website", "industry", "numberofemployees", "country"]


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        return status_code == 429 or status_code >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


_hubspot_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


def _parse_amount(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class HubSpotGateway(SourceGateway):
    """HubSpot CRM gateway.

    Args:
        access_token: HubSpot private app access token.
        stage_map: Native stage code -> canonical stage table.
        base_url: HubSpot API base URL.
        timeout: Per-request timeout in seconds.
        max_contacts: Cap on contacts resolved per deal.
    """

    def __init__(
        self,
        access_token: str,
        stage_map: dict[str, str] | None = None,
        base_url: str = "https://api.hubapi.com",
        timeout: float = 10.0,
        max_contacts: int = 5,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._stage_map = stage_map if stage_map is not None else DEFAULT_STAGE_MAP
        self._timeout = timeout
        self._max_contacts = max_contacts
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with auth headers and timeout."""
        return httpx.AsyncClient(headers=self._headers, timeout=self._timeout)

    @_hubspot_retry
    async def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any] | None:
        """GET a HubSpot resource. Returns None on 404."""
        async with self._client() as client:
            response = await client.get(f"{self._base_url}{path}", params=params)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def _get_object(
        self, object_type: str, object_id: str, properties: list[str]
    ) -> dict[str, Any] | None:
        try:
            return await self._get(
                f"/crm/v3/objects/{object_type}/{object_id}",
                params={"properties": ",".join(properties)},
            )
        except httpx.HTTPError as exc:
            logger.error(
                "hubspot.fetch_failed",
                object_type=object_type,
                object_id=object_id,
                error=str(exc),
            )
            raise UpstreamFetchError(
                f"Failed to fetch {object_type} {object_id} from HubSpot: {exc}"
            ) from exc

    # ── Parsing ─────────────────────────────────────────────────────────

    def _parse_deal(self, data: dict[str, Any]) -> Deal:
        props = data.get("properties") or {}
        stage_id = props.get("dealstage") or ""
        return Deal(
            id=str(data["id"]),
            name=props.get("dealname") or "Untitled Deal",
            amount=_parse_amount(props.get("amount")),
            stage=normalize_stage(stage_id, self._stage_map),
            stage_id=stage_id,
            close_date=props.get("closedate") or None,
            description=props.get("description") or None,
            owner_id=props.get("hubspot_owner_id") or None,
        )

    @staticmethod
    def _parse_contact(data: dict[str, Any]) -> Contact:
        props = data.get("properties") or {}
        return Contact(
            id=str(data["id"]),
            first_name=props.get("firstname") or "",
            last_name=props.get("lastname") or "",
            email=props.get("email") or "",
            phone=props.get("phone") or None,
            job_title=props.get("jobtitle") or None,
            company_name=props.get("company") or None,
        )

    @staticmethod
    def _parse_company(data: dict[str, Any]) -> Company:
        props = data.get("properties") or {}
        return Company(
            id=str(data["id"]),
            name=props.get("name") or "",
            domain=props.get("domain") or props.get("website") or None,
            industry=props.get("industry") or None,
            number_of_employees=props.get("numberofemployees") or None,
            country=props.get("country") or None,
        )

    # ── SourceGateway ───────────────────────────────────────────────────

    async def fetch_deal(self, deal_id: str) -> Deal | None:
        data = await self._get_object("deals", deal_id, DEAL_PROPERTIES)
        if data is None:
            logger.info("hubspot.deal_not_found", deal_id=deal_id)
            return None
        deal = self._parse_deal(data)
        if not deal.is_canonical_stage:
            logger.info("hubspot.unmapped_stage", deal_id=deal_id, stage_id=deal.stage_id)
        return deal

    async def fetch_deal_with_associations(self, deal_id: str) -> Deal | None:
        deal = await self.fetch_deal(deal_id)
        if deal is None:
            return None

        contacts = await self._resolve_contacts(deal_id)
        company = await self._resolve_company(deal_id)

        logger.info(
            "hubspot.deal_fetched",
            deal_id=deal_id,
            stage_id=deal.stage_id,
            contacts=len(contacts),
            has_company=company is not None,
        )
        return deal.model_copy(update={"contacts": contacts, "company": company})

    async def fetch_contact(self, contact_id: str) -> Contact | None:
        data = await self._get_object("contacts", contact_id, CONTACT_PROPERTIES)
        if data is None:
            logger.info("hubspot.contact_not_found", contact_id=contact_id)
            return None
        return self._parse_contact(data)

    async def fetch_company(self, company_id: str) -> Company | None:
        data = await self._get_object("companies", company_id, COMPANY_PROPERTIES)
        if data is None:
            logger.info("hubspot.company_not_found", company_id=company_id)
            return None
        return self._parse_company(data)

    # ── Associations ────────────────────────────────────────────────────

    async def _association_ids(self, deal_id: str, to_object_type: str) -> list[str]:
        """IDs associated to a deal, in HubSpot's order."""
        data = await self._get(f"/crm/v4/objects/deals/{deal_id}/associations/{to_object_type}")
        if not data:
            return []
        ids: list[str] = []
        for assoc in data.get("results", []):
            object_id = assoc.get("toObjectId") or assoc.get("id")
            if object_id is not None:
                ids.append(str(object_id))
        return ids

    async def _resolve_contacts(self, deal_id: str) -> list[Contact]:
        try:
            contact_ids = await self._association_ids(deal_id, "contacts")
        except Exception as exc:
            logger.warning("hubspot.contact_associations_failed", deal_id=deal_id, error=str(exc))
            return []

        contacts: list[Contact] = []
        for contact_id in contact_ids[: self._max_contacts]:
            try:
                contact = await self.fetch_contact(contact_id)
            except Exception as exc:
                logger.warning(
                    "hubspot.contact_fetch_failed",
                    deal_id=deal_id,
                    contact_id=contact_id,
                    error=str(exc),
                )
                continue
            if contact is not None:
                contacts.append(contact)
        return contacts

    async def _resolve_company(self, deal_id: str) -> Company | None:
        try:
            company_ids = await self._association_ids(deal_id, "companies")
            if not company_ids:
                return None
            return await self.fetch_company(company_ids[0])
        except Exception as exc:
            logger.warning("hubspot.company_association_failed", deal_id=deal_id, error=str(exc))
            return None
