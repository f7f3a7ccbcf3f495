"""UPSERT sync engine -- HubSpot deals into Airtable companies, clients, and projects.

Each deal runs through three tiers, strictly in order:
- Tier 1 (company): upsert the associated company, if any
- Tier 2 (contact): upsert the primary contact, linked to the Tier 1 company
- Tier 3 (project): update the existing project, or create one when the
  deal's stage is in the creation-trigger set

Tier 1 and 2 failures are reported as failed CompanySyncResult /
ContactSyncResult values and never stop Tier 3; the project simply goes
without that link. Everything else is caught at the top of sync_deal and
turned into an "error" SyncResult -- the engine never raises.

Work is serialized per external id (deal, company, contact) through a
KeyedLock, so two concurrent deliveries for the same id cannot both see
"not found" and create duplicates.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

import structlog

from src.dealsync.core.monitoring import track_sync
from src.dealsync.sync.diff import (
    build_company_input,
    build_company_update,
    build_contact_input,
    build_contact_update,
    build_project_input,
    build_project_update,
)
from src.dealsync.sync.errors import LinkConflictError
from src.dealsync.sync.schemas import (
    Company,
    CompanySyncResult,
    Contact,
    ContactSyncResult,
    Deal,
    SyncAction,
    SyncConfig,
    SyncResult,
    TargetProjectRecord,
    WebhookEvent,
)
from src.dealsync.sync.source import SourceGateway
from src.dealsync.sync.target import TargetStore

logger = structlog.get_logger(__name__)


class KeyedLock:
    """Registry of asyncio locks keyed by string, released when unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class SyncEngine:
    """Orchestrates one-way sync from a source gateway into a target store.

    Args:
        source: Reads deals, contacts, and companies (HubSpot).
        target: Directory store the records are mirrored into (Airtable).
        config: Immutable sync configuration.
    """

    def __init__(self, source: SourceGateway, target: TargetStore, config: SyncConfig) -> None:
        self._source = source
        self._target = target
        self._config = config
        self._locks = KeyedLock()

    @property
    def config(self) -> SyncConfig:
        return self._config

    # ── Deals ───────────────────────────────────────────────────────────

    async def sync_deal(self, deal_id: str, property_changed: str | None = None) -> SyncResult:
        """Run the three-tier UPSERT for one deal.

        Args:
            deal_id: HubSpot deal ID.
            property_changed: Property named by the triggering webhook, if any.
                Logged only; every sync re-diffs all syncable fields.

        Returns:
            SyncResult. Never raises.
        """
        async with track_sync() as tracker:
            try:
                async with self._locks.hold(f"deal:{deal_id}"):
                    result = await self._sync_deal(deal_id, property_changed)
            except Exception as exc:
                logger.error("sync.deal_failed", deal_id=deal_id, error=str(exc))
                result = SyncResult(
                    success=False,
                    action=SyncAction.ERROR,
                    deal_id=deal_id,
                    message=str(exc),
                )
            tracker["action"] = result.action.value

        logger.info(
            "sync.deal_complete",
            deal_id=deal_id,
            action=result.action.value,
            project_id=result.project_id,
        )
        return result

    async def _sync_deal(self, deal_id: str, property_changed: str | None) -> SyncResult:
        logger.info("sync.deal_started", deal_id=deal_id, property_changed=property_changed)

        deal = await self._source.fetch_deal_with_associations(deal_id)
        if deal is None:
            return SyncResult(
                success=False,
                action=SyncAction.ERROR,
                deal_id=deal_id,
                message=f"Deal {deal_id} not found in HubSpot",
            )

        # Tier 1
        company_id: str | None = None
        if deal.company is not None:
            company_result = await self.sync_company(deal.company)
            if company_result.success:
                company_id = company_result.airtable_company_id

        # Tier 2
        contact_id: str | None = None
        if deal.primary_contact is not None:
            contact_result = await self._upsert_contact(deal.primary_contact, company_id)
            if contact_result.success:
                contact_id = contact_result.client_id

        # Tier 3
        existing = await self._target.find_project_by_external_id(deal.id)
        if existing is not None:
            return await self._update_project(deal, existing, contact_id, company_id)
        return await self._create_project(deal, contact_id, company_id)

    async def _update_project(
        self,
        deal: Deal,
        existing: TargetProjectRecord,
        contact_id: str | None,
        company_id: str | None,
    ) -> SyncResult:
        if not self._config.enable_updates:
            return SyncResult(
                success=True,
                action=SyncAction.SKIPPED,
                deal_id=deal.id,
                project_id=existing.id,
                contact_id=contact_id,
                company_id=company_id,
                message="Updates disabled in config",
            )

        if company_id and existing.company_id != company_id:
            await self._try_link(self._target.link_project_to_company, existing.id, company_id)
        if contact_id and existing.contact_id != contact_id:
            await self._try_link(self._target.link_project_to_contact, existing.id, contact_id)

        update = build_project_update(deal, existing, self._config)
        if update.is_empty():
            return SyncResult(
                success=True,
                action=SyncAction.SKIPPED,
                deal_id=deal.id,
                project_id=existing.id,
                contact_id=contact_id,
                company_id=company_id,
                message="No syncable fields changed",
            )

        fields = update.changed_fields()
        project = await self._target.update_project(existing.id, update)
        logger.info("sync.project_updated", deal_id=deal.id, project_id=project.id, fields=fields)

        return SyncResult(
            success=True,
            action=SyncAction.UPDATED,
            deal_id=deal.id,
            project_id=project.id,
            contact_id=contact_id,
            company_id=company_id,
            message=f"Updated project with fields: {', '.join(fields)}",
        )

    async def _create_project(
        self, deal: Deal, contact_id: str | None, company_id: str | None
    ) -> SyncResult:
        if deal.stage_id.lower() not in self._config.project_creation_stages:
            logger.info("sync.creation_not_triggered", deal_id=deal.id, stage_id=deal.stage_id)
            return SyncResult(
                success=True,
                action=SyncAction.SKIPPED,
                deal_id=deal.id,
                contact_id=contact_id,
                company_id=company_id,
                message=f"Deal stage '{deal.stage}' does not trigger project creation",
            )

        data = build_project_input(
            deal,
            self._config,
            synced_on=_today(),
            contact_id=contact_id,
            company_id=company_id,
        )
        project = await self._target.create_project(data)
        logger.info("sync.project_created", deal_id=deal.id, project_id=project.id)

        message = f"Created new project: {project.name}"
        if contact_id:
            message += f" (linked to client {contact_id})"
        if company_id:
            message += f" (company {company_id})"

        return SyncResult(
            success=True,
            action=SyncAction.CREATED,
            deal_id=deal.id,
            project_id=project.id,
            contact_id=contact_id,
            company_id=company_id,
            message=message,
        )

    # ── Companies ───────────────────────────────────────────────────────

    async def sync_company(self, company: Company) -> CompanySyncResult:
        """Upsert one HubSpot company into the Companies table. Never raises."""
        try:
            async with self._locks.hold(f"company:{company.id}"):
                existing = await self._target.find_company_by_external_id(company.id)

                if existing is None:
                    created = await self._target.create_company(build_company_input(company))
                    logger.info("sync.company_created", company_id=company.id, record_id=created.id)
                    return CompanySyncResult(
                        success=True,
                        action=SyncAction.CREATED,
                        hubspot_company_id=company.id,
                        airtable_company_id=created.id,
                        message=f"Created new company: {created.name}",
                    )

                update = build_company_update(company, existing, self._config.syncable_company_fields)
                if update.is_empty():
                    return CompanySyncResult(
                        success=True,
                        action=SyncAction.SKIPPED,
                        hubspot_company_id=company.id,
                        airtable_company_id=existing.id,
                        message="No company fields changed",
                    )

                fields = update.changed_fields()
                updated = await self._target.update_company(existing.id, update)
                return CompanySyncResult(
                    success=True,
                    action=SyncAction.UPDATED,
                    hubspot_company_id=company.id,
                    airtable_company_id=updated.id,
                    message=f"Updated company with fields: {', '.join(fields)}",
                )
        except Exception as exc:
            logger.error("sync.company_failed", company_id=company.id, error=str(exc))
            return CompanySyncResult(
                success=False,
                action=SyncAction.ERROR,
                hubspot_company_id=company.id,
                message=str(exc),
            )

    # ── Contacts ────────────────────────────────────────────────────────

    async def sync_contact(self, contact_id: str) -> ContactSyncResult:
        """Fetch one HubSpot contact and upsert it on its own. Never raises."""
        logger.info("sync.contact_started", contact_id=contact_id)
        try:
            contact = await self._source.fetch_contact(contact_id)
        except Exception as exc:
            logger.error("sync.contact_failed", contact_id=contact_id, error=str(exc))
            return ContactSyncResult(
                success=False,
                action=SyncAction.ERROR,
                contact_id=contact_id,
                message=str(exc),
            )

        if contact is None:
            return ContactSyncResult(
                success=False,
                action=SyncAction.ERROR,
                contact_id=contact_id,
                message=f"Contact {contact_id} not found in HubSpot",
            )
        return await self._upsert_contact(contact)

    async def _upsert_contact(self, contact: Contact, company_id: str | None = None) -> ContactSyncResult:
        try:
            async with self._locks.hold(f"contact:{contact.id}"):
                result = await self._write_contact(contact)
        except Exception as exc:
            logger.error("sync.contact_failed", contact_id=contact.id, error=str(exc))
            return ContactSyncResult(
                success=False,
                action=SyncAction.ERROR,
                contact_id=contact.id,
                message=str(exc),
            )

        if company_id and result.client_id:
            await self._try_link(self._target.link_contact_to_company, result.client_id, company_id)
        return result

    async def _write_contact(self, contact: Contact) -> ContactSyncResult:
        existing = await self._target.find_contact_by_external_id(contact.id)

        if existing is None:
            created = await self._target.create_contact(build_contact_input(contact))
            logger.info("sync.contact_created", contact_id=contact.id, record_id=created.id)
            return ContactSyncResult(
                success=True,
                action=SyncAction.CREATED,
                contact_id=contact.id,
                client_id=created.id,
                message=f"Created new client: {created.first_name} {created.last_name}".rstrip(),
            )

        update = build_contact_update(contact, existing, self._config.syncable_contact_fields)
        if update.is_empty():
            return ContactSyncResult(
                success=True,
                action=SyncAction.SKIPPED,
                contact_id=contact.id,
                client_id=existing.id,
                message="No contact fields changed",
            )

        fields = update.changed_fields()
        updated = await self._target.update_contact(existing.id, update)
        return ContactSyncResult(
            success=True,
            action=SyncAction.UPDATED,
            contact_id=contact.id,
            client_id=updated.id,
            message=f"Updated client with fields: {', '.join(fields)}",
        )

    # ── Links ───────────────────────────────────────────────────────────

    async def _try_link(
        self, link: Callable[[str, str], Awaitable[None]], record_id: str, linked_id: str
    ) -> None:
        """Apply a link operation; an existing link or a failure is not fatal."""
        try:
            await link(record_id, linked_id)
        except LinkConflictError:
            logger.debug("sync.link_exists", record_id=record_id, linked_id=linked_id)
        except Exception as exc:
            logger.warning(
                "sync.link_failed",
                record_id=record_id,
                linked_id=linked_id,
                error=str(exc),
            )

    # ── Batches ─────────────────────────────────────────────────────────

    async def process_batch(self, events: list[WebhookEvent]) -> list[SyncResult]:
        """Sync every unique deal named in a webhook batch.

        Events are deduplicated by object id; the last payload for an id wins
        while the id keeps the position of its first occurrence. Ids are
        processed sequentially and one failure never stops the batch.
        """
        unique: dict[str, WebhookEvent] = {}
        for event in events:
            unique[str(event.object_id)] = event

        logger.info("sync.batch_started", events=len(events), unique_deals=len(unique))

        results: list[SyncResult] = []
        for deal_id, event in unique.items():
            results.append(await self.sync_deal(deal_id, event.property_name))

        logger.info(
            "sync.batch_complete",
            processed=len(results),
            errors=sum(1 for r in results if not r.success),
        )
        return results


def _today() -> date:
    return datetime.now(timezone.utc).date()
