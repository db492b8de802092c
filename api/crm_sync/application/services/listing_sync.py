"""
Sync de listings CRM -> base local.

Dos estrategias sobre el mismo upsert por registro:
- Full: recorre todo el modulo Products y desactiva lo que ya no existe.
- Delta: solo lo modificado desde el ultimo checkpoint valido, con diff
  contra el estado previo para disparar notificaciones y con manejo de
  borrados remotos. Sin checkpoint previo, o ante cualquier fallo del
  intento delta, se ejecuta un full sync (mode=full-fallback).

Estrategia de idempotencia:
- UPSERT por external_id; correr N veces el mismo lote no duplica.
- Cada registro se confirma por separado: un error no tumba el lote.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.application.dto.sync_dto import SyncRunResultDTO
from crm_sync.application.services.actor_resolution import ActorResolutionCache, ActorResolver
from crm_sync.application.services.notification_dispatcher import NotificationDispatcher, NotificationRequest
from crm_sync.core.config import settings
from crm_sync.infrastructure.external.crm.crm_client import CrmClient
from crm_sync.infrastructure.external.crm.field_mapper import map_listing_fields
from crm_sync.infrastructure.external.crm.types import ListingAttachments, RemoteListing
from crm_sync.infrastructure.repositories.actor_repository import ActorRepository
from crm_sync.infrastructure.repositories.checkpoint_repository import CheckpointRepository
from crm_sync.infrastructure.repositories.listing_repository import ListingRepository
from crm_sync.infrastructure.repositories.offer_repository import OfferRepository
from crm_sync.infrastructure.repositories.watchlist_repository import WatchlistRepository
from crm_sync.shared.constants.sync_constants import (
    LISTING_CHECKPOINT_TYPES,
    CheckpointStatus,
    CheckpointType,
    NotificationType,
    SyncMode,
)
from crm_sync.shared.utils.datetime_utils import ensure_utc, utc_now
from crm_sync.shared.utils.visibility import is_listing_visible


@dataclass(frozen=True)
class ListingUpsertOutcome:
    """Resultado del upsert de un registro, con el estado previo para el diff."""

    listing_id: str
    external_id: str
    seller_id: str
    name: str
    prior: Optional[Dict[str, Any]]
    values: Dict[str, Any]

    @property
    def is_new(self) -> bool:
        return self.prior is None


def _status_for(errors: int) -> CheckpointStatus:
    return CheckpointStatus.PARTIAL if errors > 0 else CheckpointStatus.SUCCESS


class ListingSyncEngine:
    """
    Motor de sync de listings.

    Es duenio del cache de resolucion de vendedores; una instancia por proceso.
    """

    def __init__(
        self,
        crm: CrmClient,
        *,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        actor_cache: Optional[ActorResolutionCache] = None,
        visibility_mode: Optional[str] = None,
        new_listing_notify_limit: Optional[int] = None,
    ):
        if session_factory is None:
            from crm_sync.infrastructure.database.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._crm = crm
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._visibility_mode = visibility_mode
        self._notify_limit = (
            new_listing_notify_limit if new_listing_notify_limit is not None else settings.NEW_LISTING_NOTIFY_LIMIT
        )
        self.actor_cache = actor_cache if actor_cache is not None else ActorResolutionCache()
        self._resolver = ActorResolver(self.actor_cache)

    # ------------------------------------------------------------------
    # Upsert por registro (compartido con el webhook)
    # ------------------------------------------------------------------

    async def _fetch_attachments(self, external_id: str) -> ListingAttachments:
        try:
            return await self._crm.fetch_listing_attachments(external_id)
        except Exception as e:
            logger.warning(f"No se pudieron leer adjuntos del listing {external_id}: {e}")
            return ListingAttachments()

    async def upsert_listing(
        self,
        db: AsyncSession,
        remote: RemoteListing,
        synced_at: datetime,
    ) -> Optional[ListingUpsertOutcome]:
        """
        Mapea y escribe un listing remoto. No hace commit.

        Returns:
            Outcome con el estado previo, o None si el vendedor no esta vinculado
        """
        seller_id = await self._resolver.resolve(db, remote.seller_external_id)
        if not seller_id:
            return None

        values = map_listing_fields(remote.fields, self._visibility_mode)
        attachments = await self._fetch_attachments(remote.external_id)

        repo = ListingRepository(db)
        prior = await repo.get_snapshot(remote.external_id)
        listing_id = await repo.upsert_from_remote(
            external_id=remote.external_id,
            seller_id=seller_id,
            fields=values,
            image_urls=attachments.image_urls,
            coa_urls=attachments.coa_urls,
            synced_at=synced_at,
        )
        return ListingUpsertOutcome(
            listing_id=listing_id,
            external_id=remote.external_id,
            seller_id=seller_id,
            name=values["name"],
            prior=prior,
            values=values,
        )

    async def _sync_batch(
        self,
        db: AsyncSession,
        records: Iterable[RemoteListing],
        synced_at: datetime,
        *,
        notify: bool,
    ) -> Dict[str, int]:
        synced = skipped = errors = 0

        for remote in records:
            try:
                outcome = await self.upsert_listing(db, remote, synced_at)
                if outcome is None:
                    skipped += 1
                    logger.debug(f"Listing {remote.external_id} omitido: vendedor {remote.seller_external_id} sin vincular")
                    continue
                await db.commit()
                synced += 1
            except Exception as e:
                await db.rollback()
                errors += 1
                logger.error(f"Error sincronizando listing {remote.external_id} ({remote.name}): {e}")
                continue

            if notify:
                await self._emit_side_effects(db, outcome)

        return {"synced": synced, "skipped": skipped, "errors": errors}

    # ------------------------------------------------------------------
    # Notificaciones derivadas del diff
    # ------------------------------------------------------------------

    def _enqueue(self, user_ids: List[str], notification_type: NotificationType, title: str, body: str, data: Dict[str, Any]) -> None:
        if self._dispatcher is None or not user_ids:
            return
        self._dispatcher.enqueue(
            NotificationRequest(
                user_ids=user_ids,
                type=notification_type.value,
                title=title,
                body=body,
                data=data,
            )
        )

    async def _emit_side_effects(self, db: AsyncSession, outcome: ListingUpsertOutcome) -> None:
        """
        a) listing nuevo y visible -> LISTING_NEW a una muestra de compradores previos del vendedor
        b) cambio de precio -> LISTING_PRICE a compradores con oferta PENDING
        c) baja de precio -> WATCHLIST_PRICE_DROP a quienes lo siguen y no recibieron (b)
        """
        try:
            if outcome.is_new:
                visible = is_listing_visible(
                    {
                        "is_active": outcome.values.get("is_active"),
                        "marketplace_visible": outcome.values.get("marketplace_visible", False),
                    },
                    self._visibility_mode,
                )
                if visible:
                    buyers = await ActorRepository(db).prior_counterparty_ids(outcome.seller_id, self._notify_limit)
                    self._enqueue(
                        buyers,
                        NotificationType.LISTING_NEW,
                        "New listing from a seller you've worked with",
                        f"{outcome.name} is now available on the marketplace.",
                        {"listing_id": outcome.listing_id},
                    )
                return

            old_price = outcome.prior.get("price_per_unit")
            new_price = outcome.values.get("price_per_unit")
            if old_price is None or new_price is None or old_price == new_price:
                return

            direction = "decreased" if new_price < old_price else "increased"
            data = {
                "listing_id": outcome.listing_id,
                "old_price": old_price,
                "new_price": new_price,
                "direction": direction,
            }

            pending_buyers = await OfferRepository(db).pending_buyer_ids_for_listing(outcome.listing_id)
            self._enqueue(
                pending_buyers,
                NotificationType.LISTING_PRICE,
                f"Price {direction} on a listing you bid on",
                f"{outcome.name}: ${old_price:g} -> ${new_price:g} per unit.",
                data,
            )

            if direction == "decreased":
                already_notified = set(pending_buyers)
                watchers = await WatchlistRepository(db).buyer_ids_for_listing(outcome.listing_id)
                self._enqueue(
                    [buyer for buyer in watchers if buyer not in already_notified],
                    NotificationType.WATCHLIST_PRICE_DROP,
                    "Price drop on a watched listing",
                    f"{outcome.name} dropped to ${new_price:g} per unit.",
                    data,
                )
        except Exception as e:
            logger.error(f"Error preparando notificaciones del listing {outcome.external_id}: {e}")

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def _record_checkpoint(self, db: AsyncSession, result: SyncRunResultDTO, created_at: datetime) -> None:
        await CheckpointRepository(db).record(
            type=result.type,
            status=result.status,
            record_count=result.synced if result.status != CheckpointStatus.ERROR.value else None,
            details=result.to_details(),
            created_at=created_at,
        )
        await db.commit()

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def run_full(self, mode: SyncMode = SyncMode.FULL) -> SyncRunResultDTO:
        """Re-sincroniza todo el modulo Products. Escribe exactamente un checkpoint."""
        started_at = utc_now()
        logger.info(f"Iniciando full sync de listings (mode={mode.value})...")

        async with self._session_factory() as db:
            try:
                records = await self._crm.fetch_all_listings()
            except Exception as e:
                logger.error(f"Full sync de listings fallo: {e}")
                result = SyncRunResultDTO(
                    type=CheckpointType.FULL.value,
                    status=CheckpointStatus.ERROR.value,
                    mode=mode.value,
                    error=str(e) or e.__class__.__name__,
                )
                await self._record_checkpoint(db, result, started_at)
                return result

            counts = await self._sync_batch(db, records, started_at, notify=False)

            deactivated = 0
            present = {remote.external_id for remote in records}
            if present:
                try:
                    deactivated = await ListingRepository(db).deactivate_missing(present, started_at)
                    await db.commit()
                except Exception as e:
                    await db.rollback()
                    counts["errors"] += 1
                    logger.error(f"Error desactivando listings ausentes en el CRM: {e}")

            result = SyncRunResultDTO(
                type=CheckpointType.FULL.value,
                status=_status_for(counts["errors"]).value,
                mode=mode.value,
                total=len(records),
                deactivated=deactivated,
                **counts,
            )
            await self._record_checkpoint(db, result, started_at)

        logger.success(
            f"Full sync completo: {result.synced} sincronizados, {result.skipped} omitidos, "
            f"{result.errors} errores, {result.deactivated} desactivados"
        )
        return result

    # ------------------------------------------------------------------
    # Delta sync
    # ------------------------------------------------------------------

    async def run_delta(self) -> SyncRunResultDTO:
        """Sync incremental desde el ultimo checkpoint valido, con fallback a full."""
        async with self._session_factory() as db:
            last = await CheckpointRepository(db).latest_successful(LISTING_CHECKPOINT_TYPES)
            since = ensure_utc(last.created_at) if last else None

        if since is None:
            logger.info("No hay checkpoint previo de listings; se ejecuta full sync")
            return await self.run_full(mode=SyncMode.FULL_FALLBACK)

        try:
            return await self._run_delta_window(since)
        except Exception as e:
            logger.error(f"Delta sync fallo, se ejecuta full sync: {e}")
            return await self.run_full(mode=SyncMode.FULL_FALLBACK)

    async def _run_delta_window(self, since: datetime) -> SyncRunResultDTO:
        started_at = utc_now()
        logger.info(f"Iniciando delta sync de listings (since={since.isoformat()})...")

        records = await self._crm.fetch_listings_modified_since(since)

        async with self._session_factory() as db:
            counts = await self._sync_batch(db, records, started_at, notify=True)
            removed, deactivated = await self._apply_remote_deletions(db, since, started_at)

            result = SyncRunResultDTO(
                type=CheckpointType.DELTA.value,
                status=_status_for(counts["errors"]).value,
                mode=SyncMode.DELTA.value,
                total=len(records),
                removed=removed,
                deactivated=deactivated,
                since=since.isoformat(),
                **counts,
            )
            await self._record_checkpoint(db, result, started_at)

        logger.success(
            f"Delta sync completo: {result.synced} sincronizados, {result.skipped} omitidos, "
            f"{result.errors} errores, {result.removed} borrados, {result.deactivated} desactivados"
        )
        return result

    async def _apply_remote_deletions(self, db: AsyncSession, since: datetime, synced_at: datetime) -> tuple[int, int]:
        """
        Borrados remotos desde `since`, particionados en bloque:
        con dependientes (ofertas o transacciones) -> desactivar; sin -> borrar.
        Un fallo aqui se registra y no invalida la corrida.
        """
        try:
            deleted_ids = await self._crm.fetch_deleted_listing_ids(since)
            if not deleted_ids:
                return 0, 0

            repo = ListingRepository(db)
            with_dependents = await repo.ids_with_dependents(deleted_ids)
            deactivated = await repo.deactivate_by_ids(with_dependents, synced_at)
            removed = await repo.delete_by_external_ids(deleted_ids, exclude_ids=with_dependents)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Chequeo de listings borrados en el CRM fallo (no critico): {e}")
            return 0, 0

        if removed:
            logger.info(f"{removed} listings borrados en el CRM eliminados localmente")
        if deactivated:
            logger.info(f"{deactivated} listings borrados en el CRM desactivados (tienen ofertas o transacciones)")
        return removed, deactivated
