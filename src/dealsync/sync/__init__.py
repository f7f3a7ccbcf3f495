"""Deal sync layer -- pluggable source/target adapters around an UPSERT engine.

Provides abstract interfaces with concrete implementations:
- SourceGateway / HubSpotGateway: Reads deals, contacts, and companies from HubSpot
- TargetStore / AirtableStore: Mirrors companies, clients, and projects in Airtable
- SyncEngine: Three-tier company -> contact -> project UPSERT with batch dedup

Architecture: HubSpot is the source of truth. Sync is one-way; nothing
written to Airtable is ever pushed back.
"""

from src.dealsync.sync.airtable import AirtableStore
from src.dealsync.sync.engine import KeyedLock, SyncEngine
from src.dealsync.sync.errors import (
    LinkConflictError,
    SyncError,
    TargetLookupError,
    TargetWriteError,
    UpstreamFetchError,
)
from src.dealsync.sync.field_mapping import (
    DEFAULT_AIRTABLE_SCHEMA,
    DEFAULT_STAGE_MAP,
    DEFAULT_SYNC_CONFIG,
    normalize_stage,
)
from src.dealsync.sync.hubspot import HubSpotGateway
from src.dealsync.sync.source import SourceGateway
from src.dealsync.sync.target import TargetStore

__all__ = [
    "SourceGateway",
    "TargetStore",
    "HubSpotGateway",
    "AirtableStore",
    "SyncEngine",
    "KeyedLock",
    "SyncError",
    "UpstreamFetchError",
    "TargetLookupError",
    "TargetWriteError",
    "LinkConflictError",
    "DEFAULT_STAGE_MAP",
    "DEFAULT_SYNC_CONFIG",
    "DEFAULT_AIRTABLE_SCHEMA",
    "normalize_stage",
]
