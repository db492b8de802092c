"""
Sync de actores (Contacts del CRM vinculados a una cuenta del marketplace).

Solo actualiza actores que ya existen localmente: el alta ocurre en el
onboarding, no aqui. Los campos se mezclan con allow-list y un valor
remoto vacio nunca borra uno local.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.application.dto.sync_dto import SyncRunResultDTO
from crm_sync.application.services.actor_resolution import ActorResolutionCache
from crm_sync.infrastructure.external.crm.crm_client import CrmClient
from crm_sync.infrastructure.external.crm.field_mapper import merge_actor_fields
from crm_sync.infrastructure.external.crm.types import RemoteActor
from crm_sync.infrastructure.repositories.actor_repository import ActorRepository
from crm_sync.infrastructure.repositories.checkpoint_repository import CheckpointRepository
from crm_sync.shared.constants.sync_constants import CheckpointStatus, CheckpointType
from crm_sync.shared.utils.datetime_utils import utc_now


class ActorSyncEngine:
    """Re-lectura completa de actores del marketplace desde el CRM."""

    def __init__(
        self,
        crm: CrmClient,
        *,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        actor_cache: Optional[ActorResolutionCache] = None,
    ):
        if session_factory is None:
            from crm_sync.infrastructure.database.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._crm = crm
        self._session_factory = session_factory
        self.actor_cache = actor_cache if actor_cache is not None else ActorResolutionCache()

    async def reconcile_actor(
        self,
        db: AsyncSession,
        remote: RemoteActor,
        synced_at: datetime,
        *,
        link_by_auth_uid: bool = True,
    ) -> Optional[bool]:
        """
        Aplica un Contact remoto sobre su actor local. No hace commit.

        Con link_by_auth_uid=False solo se actualiza un actor ya vinculado por
        external_id; nunca se vincula uno nuevo.

        Returns:
            None si no hay actor local, True si hubo cambios, False si ya estaba al dia
        """
        repo = ActorRepository(db)
        auth_uid = remote.auth_uid if link_by_auth_uid else None
        current = await repo.find_for_remote(auth_uid, remote.external_id)
        if current is None:
            return None

        changes = merge_actor_fields(remote.fields, current)
        if current.get("external_id") != remote.external_id:
            changes["external_id"] = remote.external_id

        self.actor_cache.set(remote.external_id, current["id"])
        if not changes:
            return False

        changes["last_synced_at"] = synced_at
        await repo.update_fields(current["id"], changes)
        return True

    async def run(self) -> SyncRunResultDTO:
        """Sincroniza todos los actores. Escribe exactamente un checkpoint de tipo actors."""
        started_at = utc_now()
        logger.info("Iniciando sync de actores...")

        async with self._session_factory() as db:
            checkpoints = CheckpointRepository(db)
            try:
                remotes = await self._crm.fetch_marketplace_actors()
            except Exception as e:
                logger.error(f"Sync de actores fallo: {e}")
                result = SyncRunResultDTO(
                    type=CheckpointType.ACTORS.value,
                    status=CheckpointStatus.ERROR.value,
                    error=str(e) or e.__class__.__name__,
                )
                await checkpoints.record(
                    type=result.type,
                    status=result.status,
                    record_count=None,
                    details=result.to_details(),
                    created_at=started_at,
                )
                await db.commit()
                return result

            synced = skipped = errors = 0
            for remote in remotes:
                try:
                    outcome = await self.reconcile_actor(db, remote, started_at)
                    if outcome is None:
                        skipped += 1
                        continue
                    await db.commit()
                    if outcome:
                        synced += 1
                except Exception as e:
                    await db.rollback()
                    errors += 1
                    logger.error(f"Error sincronizando actor {remote.external_id}: {e}")

            result = SyncRunResultDTO(
                type=CheckpointType.ACTORS.value,
                status=(CheckpointStatus.PARTIAL if errors else CheckpointStatus.SUCCESS).value,
                synced=synced,
                skipped=skipped,
                errors=errors,
                total=len(remotes),
            )
            await checkpoints.record(
                type=result.type,
                status=result.status,
                record_count=synced,
                details=result.to_details(),
                created_at=started_at,
            )
            await db.commit()

        logger.success(f"Sync de actores completo: {synced} actualizados, {skipped} sin cuenta local, {errors} errores")
        return result
