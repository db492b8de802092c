"""
Dependencias compartidas de los endpoints v1.
"""
from fastapi import Request

from crm_sync.application.use_cases.sync_use_cases import CrmSyncJob, build_sync_job


def get_sync_job(request: Request) -> CrmSyncJob:
    """Job del CRM creado en el startup; se crea bajo demanda si no existe."""
    job = getattr(request.app.state, "sync_job", None)
    if job is None:
        job = build_sync_job(dispatcher=getattr(request.app.state, "dispatcher", None))
        request.app.state.sync_job = job
    return job
