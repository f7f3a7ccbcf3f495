"""Pure builders for create payloads and minimal partial updates.

Every update builder compares a HubSpot record against its Airtable mirror
and returns a typed partial update holding only the syncable fields whose
value actually changed. Empty source values never overwrite target values,
so the sync path cannot erase data it does not have.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from src.dealsync.sync.field_mapping import project_status_for
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
    SyncConfig,
    TargetCompanyRecord,
    TargetContactRecord,
    TargetProjectRecord,
    date_portion,
)

# (HubSpot property, source attribute, target field)
_COMPANY_FIELDS = (
    ("name", "name", "name"),
    ("domain", "domain", "website"),
    ("industry", "industry", "industry"),
    ("numberofemployees", "number_of_employees", "company_size"),
    ("country", "country", "country"),
)

_CONTACT_FIELDS = (
    ("firstname", "first_name", "first_name"),
    ("lastname", "last_name", "last_name"),
    ("email", "email", "email"),
    ("phone", "phone", "phone"),
    ("jobtitle", "job_title", "job_title"),
)


def _changed(
    source: Any,
    existing: Any,
    field_table: tuple[tuple[str, str, str], ...],
    syncable: frozenset[str],
) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for prop, source_attr, target_field in field_table:
        if prop not in syncable:
            continue
        value = getattr(source, source_attr)
        if value is None or value == "":
            continue
        if value != getattr(existing, target_field):
            changes[target_field] = value
    return changes


# ── Companies ──────────────────────────────────────────────────────────────


def build_company_input(company: Company) -> CompanyInput:
    return CompanyInput(
        external_id=company.id,
        name=company.name,
        website=company.domain,
        industry=company.industry,
        company_size=company.number_of_employees,
        country=company.country,
    )


def build_company_update(
    company: Company, existing: TargetCompanyRecord, syncable: frozenset[str]
) -> CompanyUpdate:
    return CompanyUpdate(**_changed(company, existing, _COMPANY_FIELDS, syncable))


# ── Contacts ───────────────────────────────────────────────────────────────


def build_contact_input(contact: Contact) -> ContactInput:
    return ContactInput(
        external_id=contact.id,
        first_name=contact.first_name,
        last_name=contact.last_name,
        email=contact.email,
        phone=contact.phone,
        job_title=contact.job_title,
    )


def build_contact_update(
    contact: Contact, existing: TargetContactRecord, syncable: frozenset[str]
) -> ContactUpdate:
    return ContactUpdate(**_changed(contact, existing, _CONTACT_FIELDS, syncable))


# ── Projects ───────────────────────────────────────────────────────────────


def build_project_description(deal: Deal, synced_on: date) -> str:
    """Summary used when the deal carries no description of its own."""
    parts: list[str] = []

    if deal.company:
        parts.append(f"Company: {deal.company.name}")

    contact = deal.primary_contact
    if contact:
        parts.append(f"Primary Contact: {contact.full_name} ({contact.email})")

    parts.append(f"Synced from HubSpot on {synced_on.isoformat()}")
    return "\n".join(parts)


def build_project_input(
    deal: Deal,
    config: SyncConfig,
    synced_on: date,
    contact_id: str | None = None,
    company_id: str | None = None,
) -> ProjectInput:
    """Create payload for a brand-new project.

    Status falls back to `config.fallback_status` for stages without a mapping.
    """
    return ProjectInput(
        external_id=deal.id,
        name=deal.name.strip(),
        budget=deal.amount if deal.amount is not None else 0.0,
        status=project_status_for(deal.stage_id, config.project_status_map) or config.fallback_status,
        start_date=date_portion(deal.close_date),
        description=deal.description or build_project_description(deal, synced_on),
        contact_id=contact_id,
        company_id=company_id,
    )


def build_project_update(
    deal: Deal, existing: TargetProjectRecord, config: SyncConfig
) -> ProjectUpdate:
    """Minimal update for an existing project.

    Syncable fields are compared individually. Status is always recomputed
    from the stage table, independent of the syncable list, and only written
    when the stage is mapped.
    """
    syncable = config.syncable_project_fields
    changes: dict[str, Any] = {}

    if "dealname" in syncable:
        name = deal.name.strip()
        if name and name != existing.name:
            changes["name"] = name

    if "amount" in syncable and deal.amount is not None:
        if deal.amount != existing.budget:
            changes["budget"] = deal.amount

    if "closedate" in syncable:
        start_date = date_portion(deal.close_date)
        if start_date and start_date != existing.start_date:
            changes["start_date"] = start_date

    if "description" in syncable and deal.description:
        if deal.description != existing.description:
            changes["description"] = deal.description

    status = project_status_for(deal.stage_id, config.project_status_map)
    if status and status != existing.status:
        changes["status"] = status

    return ProjectUpdate(**changes)
