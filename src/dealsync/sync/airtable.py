"""Airtable target store -- companies, clients, and projects over the Airtable REST API.

Implements TargetStore for an Airtable base described by an AirtableSchema.

Key implementation details:
- Lookups use filterByFormula on the external-id field, maxRecords=1
- Canonical fields are translated with field_mapping.to_airtable_fields, so
  only mapped fields are ever written
- Reads and updates retry transient failures (tenacity, 3 attempts,
  exponential backoff 1-10s); creates only retry when the request cannot have
  reached Airtable (429, connect errors) so a timeout never double-creates
- Link writes keep a single linked id per field and raise LinkConflictError
  when the link is already present
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.dealsync.sync.errors import LinkConflictError, TargetLookupError, TargetWriteError
from src.dealsync.sync.field_mapping import (
    DEFAULT_AIRTABLE_SCHEMA,
    first_link,
    from_airtable_fields,
    to_airtable_fields,
)
from src.dealsync.sync.schemas import (
    AirtableSchema,
    CompanyInput,
    CompanyUpdate,
    ContactInput,
    ContactUpdate,
    ProjectInput,
    ProjectUpdate,
    TargetCompanyRecord,
    TargetContactRecord,
    TargetProjectRecord,
)
from src.dealsync.sync.target import TargetStore

logger = structlog.get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        return status_code == 429 or status_code >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


def _is_safe_to_resend(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return isinstance(exc, httpx.ConnectError)


_airtable_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)

_airtable_create_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_safe_to_resend),
    reraise=True,
)


def _formula_literal(value: str) -> str:
    """Quote a value for use inside an Airtable formula string literal."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class AirtableStore(TargetStore):
    """Airtable base adapter.

    Args:
        api_key: Airtable personal access token.
        base_id: Airtable base ID (app...).
        schema: Table, field, and link names. Defaults to DEFAULT_AIRTABLE_SCHEMA.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        schema: AirtableSchema | None = None,
        timeout: float = 10.0,
        api_url: str = "https://api.airtable.com/v0",
    ) -> None:
        self._base_url = f"{api_url.rstrip('/')}/{base_id}"
        self._schema = schema or DEFAULT_AIRTABLE_SCHEMA
        self._timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with auth headers and timeout."""
        return httpx.AsyncClient(headers=self._headers, timeout=self._timeout)

    def _table_url(self, table: str) -> str:
        return f"{self._base_url}/{quote(table, safe='')}"

    # ── Raw Record Operations ───────────────────────────────────────────

    @_airtable_retry
    async def _select_one(self, table: str, field_name: str, value: str) -> dict[str, Any] | None:
        formula = f"{{{field_name}}} = {_formula_literal(value)}"
        async with self._client() as client:
            response = await client.get(
                self._table_url(table),
                params={"filterByFormula": formula, "maxRecords": "1"},
            )
        response.raise_for_status()
        records = response.json().get("records", [])
        return records[0] if records else None

    @_airtable_retry
    async def _get_record(self, table: str, record_id: str) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.get(f"{self._table_url(table)}/{record_id}")
        response.raise_for_status()
        return response.json()

    @_airtable_create_retry
    async def _create_record(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post(
                self._table_url(table),
                json={"fields": fields, "typecast": True},
            )
        response.raise_for_status()
        return response.json()

    @_airtable_retry
    async def _update_record(self, table: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.patch(
                f"{self._table_url(table)}/{record_id}",
                json={"fields": fields, "typecast": True},
            )
        response.raise_for_status()
        return response.json()

    async def _find(self, table: str, field_map: dict[str, str], external_id: str) -> dict[str, Any] | None:
        try:
            return await self._select_one(table, field_map["external_id"], external_id)
        except httpx.HTTPError as exc:
            logger.error("airtable.lookup_failed", table=table, external_id=external_id, error=str(exc))
            raise TargetLookupError(
                f"Failed to look up {external_id} in Airtable table {table}: {exc}"
            ) from exc

    async def _create(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            record = await self._create_record(table, fields)
        except httpx.HTTPError as exc:
            logger.error("airtable.create_failed", table=table, error=str(exc))
            raise TargetWriteError(f"Failed to create record in Airtable table {table}: {exc}") from exc
        logger.info("airtable.record_created", table=table, record_id=record.get("id"))
        return record

    async def _update(self, table: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            if not fields:
                return await self._get_record(table, record_id)
            record = await self._update_record(table, record_id, fields)
        except httpx.HTTPError as exc:
            logger.error("airtable.update_failed", table=table, record_id=record_id, error=str(exc))
            raise TargetWriteError(
                f"Failed to update record {record_id} in Airtable table {table}: {exc}"
            ) from exc
        logger.info("airtable.record_updated", table=table, record_id=record_id, fields=list(fields))
        return record

    async def _link(self, table: str, record_id: str, link_field: str, linked_id: str) -> None:
        """Point `link_field` of a record at `linked_id`. Never clears a link."""
        try:
            record = await self._get_record(table, record_id)
        except httpx.HTTPError as exc:
            raise TargetWriteError(f"Failed to read record {record_id} before linking: {exc}") from exc

        existing = record.get("fields", {}).get(link_field) or []
        if linked_id in existing:
            raise LinkConflictError(record_id, linked_id)

        try:
            await self._update_record(table, record_id, {link_field: [linked_id]})
        except httpx.HTTPError as exc:
            logger.error("airtable.link_failed", table=table, record_id=record_id, error=str(exc))
            raise TargetWriteError(f"Failed to link {record_id} to {linked_id}: {exc}") from exc
        logger.info("airtable.record_linked", table=table, record_id=record_id, linked_id=linked_id)

    # ── Record Parsing ──────────────────────────────────────────────────

    def _to_company(self, record: dict[str, Any]) -> TargetCompanyRecord:
        data = from_airtable_fields(record.get("fields", {}), self._schema.company_fields)
        return TargetCompanyRecord(id=record["id"], **data)

    def _to_contact(self, record: dict[str, Any]) -> TargetContactRecord:
        fields = record.get("fields", {})
        data = from_airtable_fields(fields, self._schema.contact_fields)
        return TargetContactRecord(
            id=record["id"],
            company_id=first_link(fields, self._schema.contact_company_link),
            **data,
        )

    def _to_project(self, record: dict[str, Any]) -> TargetProjectRecord:
        fields = record.get("fields", {})
        data = from_airtable_fields(fields, self._schema.project_fields)
        return TargetProjectRecord(
            id=record["id"],
            contact_id=first_link(fields, self._schema.project_contact_link),
            company_id=first_link(fields, self._schema.project_company_link),
            **data,
        )

    # ── Companies ───────────────────────────────────────────────────────

    async def find_company_by_external_id(self, external_id: str) -> TargetCompanyRecord | None:
        record = await self._find(self._schema.companies_table, self._schema.company_fields, external_id)
        return self._to_company(record) if record else None

    async def create_company(self, data: CompanyInput) -> TargetCompanyRecord:
        fields = to_airtable_fields(data.model_dump(), self._schema.company_fields)
        return self._to_company(await self._create(self._schema.companies_table, fields))

    async def update_company(self, record_id: str, data: CompanyUpdate) -> TargetCompanyRecord:
        fields = to_airtable_fields(data.changes(), self._schema.company_fields)
        return self._to_company(await self._update(self._schema.companies_table, record_id, fields))

    # ── Contacts ────────────────────────────────────────────────────────

    async def find_contact_by_external_id(self, external_id: str) -> TargetContactRecord | None:
        record = await self._find(self._schema.contacts_table, self._schema.contact_fields, external_id)
        return self._to_contact(record) if record else None

    async def create_contact(self, data: ContactInput) -> TargetContactRecord:
        fields = to_airtable_fields(data.model_dump(), self._schema.contact_fields)
        return self._to_contact(await self._create(self._schema.contacts_table, fields))

    async def update_contact(self, record_id: str, data: ContactUpdate) -> TargetContactRecord:
        fields = to_airtable_fields(data.changes(), self._schema.contact_fields)
        return self._to_contact(await self._update(self._schema.contacts_table, record_id, fields))

    # ── Projects ────────────────────────────────────────────────────────

    async def find_project_by_external_id(self, external_id: str) -> TargetProjectRecord | None:
        record = await self._find(self._schema.projects_table, self._schema.project_fields, external_id)
        return self._to_project(record) if record else None

    async def create_project(self, data: ProjectInput) -> TargetProjectRecord:
        fields = to_airtable_fields(data.model_dump(), self._schema.project_fields)
        if data.contact_id:
            fields[self._schema.project_contact_link] = [data.contact_id]
        if data.company_id:
            fields[self._schema.project_company_link] = [data.company_id]
        return self._to_project(await self._create(self._schema.projects_table, fields))

    async def update_project(self, record_id: str, data: ProjectUpdate) -> TargetProjectRecord:
        fields = to_airtable_fields(data.changes(), self._schema.project_fields)
        return self._to_project(await self._update(self._schema.projects_table, record_id, fields))

    # ── Links ───────────────────────────────────────────────────────────

    async def link_project_to_contact(self, project_id: str, contact_id: str) -> None:
        await self._link(self._schema.projects_table, project_id, self._schema.project_contact_link, contact_id)

    async def link_project_to_company(self, project_id: str, company_id: str) -> None:
        await self._link(self._schema.projects_table, project_id, self._schema.project_company_link, company_id)

    async def link_contact_to_company(self, contact_id: str, company_id: str) -> None:
        await self._link(self._schema.contacts_table, contact_id, self._schema.contact_company_link, company_id)
