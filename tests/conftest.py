"""Shared fixtures and in-memory doubles for sync tests.

Provides:
- InMemoryTargetStore: TargetStore double with call log and failure injection
- FakeSourceGateway: SourceGateway double serving canned HubSpot records
- make_deal / make_contact / make_company: record factories with sensible defaults
- engine: SyncEngine wired to the two doubles with the default config
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from src.dealsync.sync.engine import SyncEngine
from src.dealsync.sync.errors import LinkConflictError
from src.dealsync.sync.field_mapping import DEFAULT_SYNC_CONFIG, normalize_stage
from src.dealsync.sync.schemas import (
    Company,
    CompanyInput,
    CompanyUpdate,
    Contact,
    ContactInput,
    ContactUpdate,
    Deal,
    ProjectInput,
    ProjectUpdate,
    TargetCompanyRecord,
    TargetContactRecord,
    TargetProjectRecord,
)
from src.dealsync.sync.source import SourceGateway
from src.dealsync.sync.target import TargetStore


# ── Factories ──────────────────────────────────────────────────────────────


def make_contact(**overrides: Any) -> Contact:
    defaults = {
        "id": "501",
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@acme.com",
        "phone": "+1 555 0100",
        "job_title": "VP Operations",
        "company_name": "Acme Corp",
    }
    defaults.update(overrides)
    return Contact(**defaults)


def make_company(**overrides: Any) -> Company:
    defaults = {
        "id": "701",
        "name": "Acme Corp",
        "domain": "acme.com",
        "industry": "Manufacturing",
        "number_of_employees": "250",
        "country": "United States",
    }
    defaults.update(overrides)
    return Company(**defaults)


def make_deal(**overrides: Any) -> Deal:
    """Deal with the canonical stage derived from `stage_id`."""
    defaults: dict[str, Any] = {
        "id": "12345",
        "name": "Test Deal",
        "amount": 50000.0,
        "stage_id": "closedwon",
        "close_date": "2024-12-15T00:00:00Z",
    }
    defaults.update(overrides)
    defaults.setdefault("stage", normalize_stage(defaults["stage_id"]))
    return Deal(**defaults)


# ── Target Store Double ────────────────────────────────────────────────────


class InMemoryTargetStore(TargetStore):
    """Dict-backed TargetStore.

    Every operation yields to the event loop once, so concurrent syncs
    interleave the way they would against a real API. Set
    `failures[<method name>]` to make that operation raise.
    """

    def __init__(self) -> None:
        self.companies: dict[str, TargetCompanyRecord] = {}
        self.contacts: dict[str, TargetContactRecord] = {}
        self.projects: dict[str, TargetProjectRecord] = {}
        self.calls: list[str] = []
        self.updates: list[tuple[str, str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self._seq = 0

    async def _record(self, op: str) -> None:
        self.calls.append(op)
        await asyncio.sleep(0)
        exc = self.failures.get(op)
        if exc is not None:
            raise exc

    def _new_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq:04d}"

    def count(self, op: str) -> int:
        return self.calls.count(op)

    @staticmethod
    def _by_external_id(records: dict[str, Any], external_id: str) -> Any:
        return next((r for r in records.values() if r.external_id == external_id), None)

    @staticmethod
    def _linked(record: Any, attr: str, linked_id: str) -> Any:
        if getattr(record, attr) == linked_id:
            raise LinkConflictError(record.id, linked_id)
        return record.model_copy(update={attr: linked_id})

    # Companies

    async def find_company_by_external_id(self, external_id: str) -> TargetCompanyRecord | None:
        await self._record("find_company_by_external_id")
        return self._by_external_id(self.companies, external_id)

    async def create_company(self, data: CompanyInput) -> TargetCompanyRecord:
        await self._record("create_company")
        record = TargetCompanyRecord(id=self._new_id("recCo"), **data.model_dump())
        self.companies[record.id] = record
        return record

    async def update_company(self, record_id: str, data: CompanyUpdate) -> TargetCompanyRecord:
        await self._record("update_company")
        self.updates.append(("company", record_id, data.changes()))
        record = self.companies[record_id].model_copy(update=data.changes())
        self.companies[record_id] = record
        return record

    # Contacts

    async def find_contact_by_external_id(self, external_id: str) -> TargetContactRecord | None:
        await self._record("find_contact_by_external_id")
        return self._by_external_id(self.contacts, external_id)

    async def create_contact(self, data: ContactInput) -> TargetContactRecord:
        await self._record("create_contact")
        record = TargetContactRecord(id=self._new_id("recCl"), **data.model_dump())
        self.contacts[record.id] = record
        return record

    async def update_contact(self, record_id: str, data: ContactUpdate) -> TargetContactRecord:
        await self._record("update_contact")
        self.updates.append(("contact", record_id, data.changes()))
        record = self.contacts[record_id].model_copy(update=data.changes())
        self.contacts[record_id] = record
        return record

    # Projects

    async def find_project_by_external_id(self, external_id: str) -> TargetProjectRecord | None:
        await self._record("find_project_by_external_id")
        return self._by_external_id(self.projects, external_id)

    async def create_project(self, data: ProjectInput) -> TargetProjectRecord:
        await self._record("create_project")
        record = TargetProjectRecord(id=self._new_id("recPr"), **data.model_dump())
        self.projects[record.id] = record
        return record

    async def update_project(self, record_id: str, data: ProjectUpdate) -> TargetProjectRecord:
        await self._record("update_project")
        self.updates.append(("project", record_id, data.changes()))
        record = self.projects[record_id].model_copy(update=data.changes())
        self.projects[record_id] = record
        return record

    # Links

    async def link_project_to_contact(self, project_id: str, contact_id: str) -> None:
        await self._record("link_project_to_contact")
        self.projects[project_id] = self._linked(self.projects[project_id], "contact_id", contact_id)

    async def link_project_to_company(self, project_id: str, company_id: str) -> None:
        await self._record("link_project_to_company")
        self.projects[project_id] = self._linked(self.projects[project_id], "company_id", company_id)

    async def link_contact_to_company(self, contact_id: str, company_id: str) -> None:
        await self._record("link_contact_to_company")
        self.contacts[contact_id] = self._linked(self.contacts[contact_id], "company_id", company_id)


# ── Source Gateway Double ──────────────────────────────────────────────────


class FakeSourceGateway(SourceGateway):
    """Serves deals, contacts, and companies from dicts. Set `error` to make every fetch raise."""

    def __init__(self) -> None:
        self.deals: dict[str, Deal] = {}
        self.contacts: dict[str, Contact] = {}
        self.companies: dict[str, Company] = {}
        self.deal_fetches: list[str] = []
        self.error: Exception | None = None

    def add_deal(self, deal: Deal) -> Deal:
        self.deals[deal.id] = deal
        return deal

    async def fetch_deal(self, deal_id: str) -> Deal | None:
        if self.error is not None:
            raise self.error
        deal = self.deals.get(deal_id)
        return deal.model_copy(update={"contacts": [], "company": None}) if deal else None

    async def fetch_deal_with_associations(self, deal_id: str) -> Deal | None:
        self.deal_fetches.append(deal_id)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.deals.get(deal_id)

    async def fetch_contact(self, contact_id: str) -> Contact | None:
        if self.error is not None:
            raise self.error
        return self.contacts.get(contact_id)

    async def fetch_company(self, company_id: str) -> Company | None:
        if self.error is not None:
            raise self.error
        return self.companies.get(company_id)


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture
def store() -> InMemoryTargetStore:
    return InMemoryTargetStore()


@pytest.fixture
def gateway() -> FakeSourceGateway:
    return FakeSourceGateway()


@pytest.fixture
def engine(gateway, store) -> SyncEngine:
    return SyncEngine(source=gateway, target=store, config=DEFAULT_SYNC_CONFIG)
