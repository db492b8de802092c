"""
Endpoints de operador para el sync con el CRM.
Permiten disparar un sync manual y consultar la bitacora de checkpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.api.v1.dependencies import get_sync_job
from crm_sync.application.dto.sync_dto import CheckpointDTO, SyncRunResultDTO
from crm_sync.application.use_cases.sync_use_cases import CrmSyncJob, SyncAdminUseCases
from crm_sync.infrastructure.database.session import get_db
from crm_sync.shared.constants.sync_constants import SyncMode

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/listings", response_model=SyncRunResultDTO)
async def sync_listings(
    mode: SyncMode = Query(SyncMode.DELTA, description="delta o full"),
    job: CrmSyncJob = Depends(get_sync_job),
):
    """Ejecuta un sync de listings bajo el mismo advisory lock que el job programado."""
    if mode == SyncMode.FULL_FALLBACK:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="mode debe ser delta o full")

    logger.info(f"Sync manual de listings solicitado (mode={mode.value})")
    result = await job.run_listings(mode)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ya hay un sync de listings en curso",
        )
    return result


@router.post("/actors", response_model=SyncRunResultDTO)
async def sync_actors(job: CrmSyncJob = Depends(get_sync_job)):
    result = await job.run_actors()
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ya hay un sync de actores en curso",
        )
    return result


@router.get("/checkpoints", response_model=List[CheckpointDTO])
async def list_checkpoints(
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Ultimos checkpoints de sync, del mas reciente al mas antiguo."""
    return await SyncAdminUseCases(db).recent_checkpoints(limit)
