"""Exception hierarchy for the sync layer.

"Not found" is never an exception: gateways and stores return None.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync-layer failures."""


class UpstreamFetchError(SyncError):
    """HubSpot could not be reached or refused the request (network, auth, rate limit)."""


class TargetLookupError(SyncError):
    """An Airtable lookup failed for a reason other than absence."""


class TargetWriteError(SyncError):
    """An Airtable create, update, or link write failed."""


class LinkConflictError(SyncError):
    """The association being written already exists."""

    def __init__(self, record_id: str, linked_id: str) -> None:
        super().__init__(f"Record {record_id} is already linked to {linked_id}")
        self.record_id = record_id
        self.linked_id = linked_id
