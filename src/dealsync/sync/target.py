"""Target store abstract base class -- the write interface onto the project directory.

Every lookup is keyed by external id (the originating HubSpot identifier) and
returns None on absence. Writes go through partial-update objects whose unset
fields are never sent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.dealsync.sync.schemas import (
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


class TargetStore(ABC):
    """Abstract interface for directory record operations.

    Lookups raise TargetLookupError on failure, writes raise TargetWriteError,
    and linking an existing association raises LinkConflictError.
    """

    # ── Companies ───────────────────────────────────────────────────────

    @abstractmethod
    async def find_company_by_external_id(self, external_id: str) -> TargetCompanyRecord | None:
        ...

    @abstractmethod
    async def create_company(self, data: CompanyInput) -> TargetCompanyRecord:
        ...

    @abstractmethod
    async def update_company(self, record_id: str, data: CompanyUpdate) -> TargetCompanyRecord:
        ...

    # ── Contacts ────────────────────────────────────────────────────────

    @abstractmethod
    async def find_contact_by_external_id(self, external_id: str) -> TargetContactRecord | None:
        ...

    @abstractmethod
    async def create_contact(self, data: ContactInput) -> TargetContactRecord:
        ...

    @abstractmethod
    async def update_contact(self, record_id: str, data: ContactUpdate) -> TargetContactRecord:
        ...

    # ── Projects ────────────────────────────────────────────────────────

    @abstractmethod
    async def find_project_by_external_id(self, external_id: str) -> TargetProjectRecord | None:
        ...

    @abstractmethod
    async def create_project(self, data: ProjectInput) -> TargetProjectRecord:
        ...

    @abstractmethod
    async def update_project(self, record_id: str, data: ProjectUpdate) -> TargetProjectRecord:
        ...

    # ── Links ───────────────────────────────────────────────────────────

    @abstractmethod
    async def link_project_to_contact(self, project_id: str, contact_id: str) -> None:
        ...

    @abstractmethod
    async def link_project_to_company(self, project_id: str, company_id: str) -> None:
        ...

    @abstractmethod
    async def link_contact_to_company(self, contact_id: str, company_id: str) -> None:
        ...
