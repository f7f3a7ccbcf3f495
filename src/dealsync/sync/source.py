"""Source gateway abstract base class -- the read-only interface onto the sales pipeline.

The SyncEngine only ever reads from the source side. Every method returns
None for records that do not exist and raises UpstreamFetchError for any
other failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.dealsync.sync.schemas import Company, Contact, Deal


class SourceGateway(ABC):
    """Abstract interface for fetching pipeline records.

    Methods:
        fetch_deal: Fetch a deal without associations.
        fetch_deal_with_associations: Fetch a deal plus its contacts and company.
        fetch_contact: Fetch a single contact.
        fetch_company: Fetch a single company.
    """

    @abstractmethod
    async def fetch_deal(self, deal_id: str) -> Deal | None:
        """Fetch a deal by ID, stage normalized."""
        ...

    @abstractmethod
    async def fetch_deal_with_associations(self, deal_id: str) -> Deal | None:
        """Fetch a deal with resolved contacts (primary first) and company.

        Association failures degrade to empty/absent associations; only a
        failure fetching the deal itself propagates.
        """
        ...

    @abstractmethod
    async def fetch_contact(self, contact_id: str) -> Contact | None:
        """Fetch a contact by ID."""
        ...

    @abstractmethod
    async def fetch_company(self, company_id: str) -> Company | None:
        """Fetch a company by ID."""
        ...
