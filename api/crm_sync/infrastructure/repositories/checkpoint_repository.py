"""
Repositorio de checkpoints de sync.

La tabla sync_checkpoints es append-only: este repositorio solo inserta y lee.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.database.models import SyncCheckpointModel
from crm_sync.shared.constants.sync_constants import NON_ERROR_STATUSES


def _values(items: Iterable) -> List[str]:
    return [getattr(item, "value", item) for item in items]


class CheckpointRepository:
    """Repositorio para la bitacora de corridas de sync."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def latest_successful(self, types: Iterable[str]) -> Optional[SyncCheckpointModel]:
        """
        Ultimo checkpoint (por created_at) de alguno de los tipos dados
        con estado success o partial.
        """
        result = await self.db.execute(
            select(SyncCheckpointModel)
            .where(
                SyncCheckpointModel.type.in_(_values(types)),
                SyncCheckpointModel.status.in_(_values(NON_ERROR_STATUSES)),
            )
            .order_by(SyncCheckpointModel.created_at.desc(), SyncCheckpointModel.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def record(
        self,
        *,
        type: str,
        status: str,
        record_count: Optional[int],
        details: Optional[Dict[str, Any]],
        created_at: datetime,
    ) -> SyncCheckpointModel:
        """
        Inserta un checkpoint.

        created_at se fija explicitamente al inicio de la corrida para que
        la ventana del siguiente delta no pierda cambios hechos durante ella.
        """
        checkpoint = SyncCheckpointModel(
            type=type,
            status=status,
            record_count=record_count,
            details=details,
            created_at=created_at,
        )
        self.db.add(checkpoint)
        await self.db.flush()
        return checkpoint

    async def recent(self, limit: int = 20) -> List[SyncCheckpointModel]:
        result = await self.db.execute(
            select(SyncCheckpointModel)
            .order_by(SyncCheckpointModel.created_at.desc(), SyncCheckpointModel.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
