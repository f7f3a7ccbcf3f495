"""Stage tables and Airtable field mappings for deal sync.

Defines:
- DEFAULT_STAGE_MAP: HubSpot native stage code -> canonical stage name.
- DEFAULT_PROJECT_STATUS_MAP: HubSpot native stage code -> Airtable project status.
- COMPANY_FIELD_MAP / CONTACT_FIELD_MAP / PROJECT_FIELD_MAP: canonical field
  name -> Airtable field name for each synced table.
- DEFAULT_SYNC_CONFIG / DEFAULT_AIRTABLE_SCHEMA: immutable defaults built from
  the tables above.
- normalize_stage() / project_status_for(): stage lookups.
- to_airtable_fields() / from_airtable_fields(): field translation.
"""

from __future__ import annotations

from typing import Any

from src.dealsync.sync.schemas import AirtableSchema, CanonicalStage, SyncConfig


# ── Stage Tables ───────────────────────────────────────────────────────────

DEFAULT_STAGE_MAP: dict[str, str] = {
    "appointmentscheduled": CanonicalStage.NEW.value,
    "qualifiedtobuy": CanonicalStage.DISCOVERY.value,
    "presentationscheduled": CanonicalStage.PROPOSAL.value,
    "decisionmakerboughtin": CanonicalStage.NEGOTIATION.value,
    "contractsent": CanonicalStage.NEGOTIATION.value,
    "closedwon": CanonicalStage.CLOSED_WON.value,
    "closedlost": CanonicalStage.CLOSED_LOST.value,
}

DEFAULT_PROJECT_STATUS_MAP: dict[str, str] = {
    "closedwon": "Active",
    "contractsent": "Pending Approval",
    "decisionmakerboughtin": "Negotiation",
    "presentationscheduled": "Proposal",
    "qualifiedtobuy": "Discovery",
    "appointmentscheduled": "New",
    "closedlost": "Cancelled",
}


# ── Airtable Field Mappings ────────────────────────────────────────────────
# Fields outside these maps are never written, so manually curated Airtable
# columns survive every sync.

COMPANY_FIELD_MAP: dict[str, str] = {
    "external_id": "HubSpot Company ID",
    "name": "Company Name",
    "website": "Website",
    "industry": "Industry",
    "company_size": "Company Size",
    "country": "Country / Region",
}

CONTACT_FIELD_MAP: dict[str, str] = {
    "external_id": "HubSpot Contact ID",
    "first_name": "First Name",
    "last_name": "Last Name",
    "email": "Email",
    "phone": "Phone",
    "job_title": "Role / Title",
}

PROJECT_FIELD_MAP: dict[str, str] = {
    "external_id": "HubSpot Deal ID",
    "name": "Project Name",
    "budget": "Budget",
    "status": "Status",
    "start_date": "Start Date",
    "description": "Description",
}


# ── Defaults ───────────────────────────────────────────────────────────────

DEFAULT_SYNC_CONFIG = SyncConfig(
    stage_map=DEFAULT_STAGE_MAP,
    project_status_map=DEFAULT_PROJECT_STATUS_MAP,
    project_creation_stages=frozenset({"closedwon"}),
    enable_updates=True,
    fallback_status="Active",
    syncable_project_fields=frozenset({"dealname", "amount", "closedate", "description"}),
    syncable_contact_fields=frozenset({"firstname", "lastname", "email", "phone", "jobtitle"}),
    syncable_company_fields=frozenset(
        {"name", "domain", "industry", "numberofemployees", "country"}
    ),
)

DEFAULT_AIRTABLE_SCHEMA = AirtableSchema(
    company_fields=COMPANY_FIELD_MAP,
    contact_fields=CONTACT_FIELD_MAP,
    project_fields=PROJECT_FIELD_MAP,
)


# ── Stage Lookups ──────────────────────────────────────────────────────────


def normalize_stage(stage_code: str, stage_map: dict[str, str] | None = None) -> str:
    """Map a native HubSpot stage code to its canonical stage name.

    Codes missing from the table come back unchanged; callers treat them as
    valid, non-canonical stages.
    """
    if stage_map is None:
        stage_map = DEFAULT_STAGE_MAP
    return stage_map.get(stage_code.lower(), stage_code)


def project_status_for(stage_code: str, status_map: dict[str, str]) -> str | None:
    """Airtable project status for a native stage code, or None when unmapped."""
    return status_map.get(stage_code.lower())


# ── Conversion Functions ───────────────────────────────────────────────────


def to_airtable_fields(data: dict[str, Any], field_map: dict[str, str]) -> dict[str, Any]:
    """Convert canonical field dict to Airtable `fields` payload.

    Fields absent from `field_map` and None values are dropped.

    Args:
        data: Dict of canonical field names to values.
        field_map: Canonical name -> Airtable field name.

    Returns:
        Dict suitable for the Airtable API `fields` parameter.
    """
    fields: dict[str, Any] = {}

    for field_name, value in data.items():
        if field_name not in field_map or value is None:
            continue
        fields[field_map[field_name]] = value

    return fields


def from_airtable_fields(fields: dict[str, Any], field_map: dict[str, str]) -> dict[str, Any]:
    """Convert an Airtable record's `fields` to canonical names.

    Args:
        fields: Airtable record `fields` dict.
        field_map: Canonical name -> Airtable field name.

    Returns:
        Dict of canonical field names to values. Missing fields are omitted.
    """
    result: dict[str, Any] = {}

    for canonical_name, airtable_name in field_map.items():
        if airtable_name in fields and fields[airtable_name] is not None:
            result[canonical_name] = fields[airtable_name]

    return result


def first_link(fields: dict[str, Any], link_field: str) -> str | None:
    """First record id of an Airtable linked-record field, or None."""
    linked = fields.get(link_field)
    if isinstance(linked, list) and linked:
        return str(linked[0])
    return None
