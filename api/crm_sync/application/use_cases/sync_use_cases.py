"""
Casos de uso del sync programado y manual.
"""
from typing import Callable, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.application.dto.sync_dto import CheckpointDTO, CrmSyncJobResultDTO, SyncRunResultDTO
from crm_sync.application.services.actor_resolution import ActorResolutionCache
from crm_sync.application.services.actor_sync import ActorSyncEngine
from crm_sync.application.services.listing_sync import ListingSyncEngine
from crm_sync.application.services.notification_dispatcher import NotificationDispatcher
from crm_sync.infrastructure.external.crm.crm_client import CrmClient
from crm_sync.infrastructure.locks.advisory_lock import AdvisoryLockManager, get_lock_manager
from crm_sync.infrastructure.repositories.checkpoint_repository import CheckpointRepository
from crm_sync.shared.constants.sync_constants import LockIds, SyncMode

CRM_SYNC_JOB_ID = "crm_sync"


class CrmSyncJob:
    """
    Orquestador del job del CRM.
    Encapsula el flujo: delta de listings -> sync de actores, cada uno bajo su advisory lock.
    """

    def __init__(
        self,
        crm: CrmClient,
        listing_engine: ListingSyncEngine,
        actor_engine: ActorSyncEngine,
        lock_manager: Optional[AdvisoryLockManager] = None,
    ):
        self.crm = crm
        self.listing_engine = listing_engine
        self.actor_engine = actor_engine
        self._lock_manager = lock_manager

    @property
    def lock_manager(self) -> AdvisoryLockManager:
        return self._lock_manager or get_lock_manager()

    async def run_listings(self, mode: SyncMode = SyncMode.DELTA) -> Optional[SyncRunResultDTO]:
        """Sync de listings bajo lock. None si otra instancia ya esta corriendo."""
        fn = self.listing_engine.run_full if mode == SyncMode.FULL else self.listing_engine.run_delta
        return await self.lock_manager.run_guarded(LockIds.CRM_SYNC, "crm-sync", fn)

    async def run_actors(self) -> Optional[SyncRunResultDTO]:
        return await self.lock_manager.run_guarded(LockIds.ACTOR_SYNC, "actor-sync", self.actor_engine.run)

    async def run(self) -> CrmSyncJobResultDTO:
        listings = await self.run_listings(SyncMode.DELTA)
        actors = await self.run_actors()
        return CrmSyncJobResultDTO(listings=listings, actors=actors)

    async def run_scheduled(self) -> None:
        """Punto de entrada del scheduler: registra y no propaga errores."""
        try:
            await self.run()
        except Exception as e:
            logger.exception(f"Job {CRM_SYNC_JOB_ID} fallo: {e}")

    def clear_caches(self) -> None:
        self.listing_engine.actor_cache.clear()


def build_sync_job(
    *,
    crm: Optional[CrmClient] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    lock_manager: Optional[AdvisoryLockManager] = None,
) -> CrmSyncJob:
    """Arma el job con un cache de actores compartido entre ambos motores."""
    crm = crm or CrmClient()
    cache = ActorResolutionCache()
    listing_engine = ListingSyncEngine(
        crm,
        session_factory=session_factory,
        dispatcher=dispatcher,
        actor_cache=cache,
    )
    actor_engine = ActorSyncEngine(crm, session_factory=session_factory, actor_cache=cache)
    return CrmSyncJob(crm, listing_engine, actor_engine, lock_manager=lock_manager)


class SyncAdminUseCases:
    """Consultas de operador sobre la bitacora de sync."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.checkpoints = CheckpointRepository(db)

    async def recent_checkpoints(self, limit: int = 20) -> List[CheckpointDTO]:
        rows = await self.checkpoints.recent(limit)
        return [CheckpointDTO.model_validate(row) for row in rows]
