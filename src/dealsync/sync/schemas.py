"""Pydantic schemas for HubSpot -> Airtable deal sync.

Defines all structured types crossing the sync boundaries:
- Enums: CanonicalStage, SyncAction
- Source records (HubSpot): Deal, Contact, Company
- Target records (Airtable): TargetCompanyRecord, TargetContactRecord, TargetProjectRecord
- Create payloads: CompanyInput, ContactInput, ProjectInput
- Partial updates: CompanyUpdate, ContactUpdate, ProjectUpdate
- Results: CompanySyncResult, ContactSyncResult, SyncResult
- Inbound notifications: WebhookEvent
- Configuration values: SyncConfig, AirtableSchema
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ── Enums ───────────────────────────────────────────────────────────────────


class CanonicalStage(str, Enum):
    """Ordered pipeline vocabulary every native stage code normalizes into."""

    NEW = "New"
    DISCOVERY = "Discovery"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"


class SyncAction(str, Enum):
    """Terminal outcome of one sync unit."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


# ── Source Records ──────────────────────────────────────────────────────────


class Contact(BaseModel):
    """HubSpot contact."""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str | None = None
    job_title: str | None = None
    company_name: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Company(BaseModel):
    """HubSpot company."""

    id: str
    name: str = ""
    domain: str | None = None
    industry: str | None = None
    number_of_employees: str | None = None
    country: str | None = None


class Deal(BaseModel):
    """HubSpot deal with optionally resolved associations.

    `stage` holds the canonical stage name, or the native code unchanged when
    the code has no canonical mapping. `stage_id` always holds the native code.
    """

    id: str
    name: str = "Untitled Deal"
    amount: float | None = None
    stage: str = ""
    stage_id: str = ""
    close_date: str | None = None
    description: str | None = None
    owner_id: str | None = None
    contacts: list[Contact] = Field(default_factory=list)
    company: Company | None = None

    @property
    def primary_contact(self) -> Contact | None:
        return self.contacts[0] if self.contacts else None

    @property
    def is_canonical_stage(self) -> bool:
        return self.stage in {s.value for s in CanonicalStage}


# ── Target Records ──────────────────────────────────────────────────────────


class TargetCompanyRecord(BaseModel):
    """Company row in the Airtable Companies table."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    external_id: str = ""
    name: str = ""
    website: str | None = None
    industry: str | None = None
    company_size: str | None = None
    country: str | None = None


class TargetContactRecord(BaseModel):
    """Client row in the Airtable Contacts table."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    external_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str | None = None
    job_title: str | None = None
    company_id: str | None = None


class TargetProjectRecord(BaseModel):
    """Project row in the Airtable Projects table."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    external_id: str = ""
    name: str = ""
    budget: float | None = None
    status: str | None = None
    start_date: str | None = None
    description: str | None = None
    contact_id: str | None = None
    company_id: str | None = None


# ── Create Payloads ─────────────────────────────────────────────────────────


class CompanyInput(BaseModel):
    """Fields for a new Airtable company."""

    external_id: str
    name: str
    website: str | None = None
    industry: str | None = None
    company_size: str | None = None
    country: str | None = None


class ContactInput(BaseModel):
    """Fields for a new Airtable client."""

    external_id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str | None = None
    job_title: str | None = None


class ProjectInput(BaseModel):
    """Fields for a new Airtable project, including optional link ids."""

    external_id: str
    name: str
    budget: float | None = None
    status: str | None = None
    start_date: str | None = None
    description: str | None = None
    contact_id: str | None = None
    company_id: str | None = None


# ── Partial Updates ─────────────────────────────────────────────────────────
# Only explicitly assigned fields are written; omission means "do not touch".
# None of these carry external_id or link fields.


class _PartialUpdate(BaseModel):
    def changes(self) -> dict[str, object]:
        """Fields explicitly set on this update."""
        return self.model_dump(exclude_unset=True)

    def changed_fields(self) -> list[str]:
        return list(self.changes())

    def is_empty(self) -> bool:
        return not self.model_fields_set


class CompanyUpdate(_PartialUpdate):
    name: str | None = None
    website: str | None = None
    industry: str | None = None
    company_size: str | None = None
    country: str | None = None


class ContactUpdate(_PartialUpdate):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    job_title: str | None = None


class ProjectUpdate(_PartialUpdate):
    name: str | None = None
    budget: float | None = None
    status: str | None = None
    start_date: str | None = None
    description: str | None = None


# ── Results ─────────────────────────────────────────────────────────────────


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompanySyncResult(_WireModel):
    """Outcome of a company upsert. `success=False` carries the failure reason."""

    success: bool
    action: SyncAction
    hubspot_company_id: str
    airtable_company_id: str | None = None
    message: str = ""


class ContactSyncResult(_WireModel):
    """Outcome of a contact upsert. `success=False` carries the failure reason."""

    success: bool
    action: SyncAction
    contact_id: str
    client_id: str | None = None
    message: str = ""


class SyncResult(_WireModel):
    """Outcome of syncing one HubSpot deal to an Airtable project."""

    success: bool
    action: SyncAction
    deal_id: str
    project_id: str | None = None
    contact_id: str | None = None
    company_id: str | None = None
    message: str = ""


# ── Inbound Notifications ───────────────────────────────────────────────────


class WebhookEvent(BaseModel):
    """One HubSpot webhook event. Unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True)

    object_id: int = Field(validation_alias=AliasChoices("objectId", "object_id"))
    property_name: str | None = Field(
        default=None, validation_alias=AliasChoices("propertyName", "property_name")
    )
    property_value: str | None = Field(
        default=None, validation_alias=AliasChoices("propertyValue", "property_value")
    )
    change_source: str | None = Field(
        default=None, validation_alias=AliasChoices("changeSource", "change_source")
    )
    event_id: int | None = Field(default=None, validation_alias=AliasChoices("eventId", "event_id"))
    subscription_id: int | None = Field(
        default=None, validation_alias=AliasChoices("subscriptionId", "subscription_id")
    )
    portal_id: int | None = Field(default=None, validation_alias=AliasChoices("portalId", "portal_id"))
    app_id: int | None = Field(default=None, validation_alias=AliasChoices("appId", "app_id"))
    occurred_at: int | None = Field(
        default=None, validation_alias=AliasChoices("occurredAt", "occurred_at")
    )
    subscription_type: str | None = Field(
        default=None, validation_alias=AliasChoices("subscriptionType", "subscription_type")
    )
    attempt_number: int = Field(default=0, validation_alias=AliasChoices("attemptNumber", "attempt_number"))


def date_portion(value: str | date | None) -> str | None:
    """Return the YYYY-MM-DD portion of an ISO date/datetime string."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value.isoformat()[:10]
    return value.split("T")[0]


# ── Configuration Values ────────────────────────────────────────────────────


class SyncConfig(BaseModel):
    """Immutable engine configuration. Built once and passed in at construction.

    Stage-keyed tables use lower-cased native HubSpot stage codes.
    Syncable field names use HubSpot property names.
    """

    model_config = ConfigDict(frozen=True)

    stage_map: dict[str, str] = Field(default_factory=dict)
    project_status_map: dict[str, str] = Field(default_factory=dict)
    project_creation_stages: frozenset[str] = frozenset({"closedwon"})
    enable_updates: bool = True
    fallback_status: str = "Active"
    syncable_project_fields: frozenset[str] = frozenset()
    syncable_contact_fields: frozenset[str] = frozenset()
    syncable_company_fields: frozenset[str] = frozenset()
    max_associated_contacts: int = Field(default=5, ge=1)


class AirtableSchema(BaseModel):
    """Immutable description of the Airtable base: tables, field and link names.

    Field maps go from canonical field name to Airtable field name. Only fields
    present in a map are ever written.
    """

    model_config = ConfigDict(frozen=True)

    companies_table: str = "Companies"
    contacts_table: str = "Contacts"
    projects_table: str = "Projects"
    company_fields: dict[str, str] = Field(default_factory=dict)
    contact_fields: dict[str, str] = Field(default_factory=dict)
    project_fields: dict[str, str] = Field(default_factory=dict)
    contact_company_link: str = "Company"
    project_contact_link: str = "Contacts"
    project_company_link: str = "Company"
