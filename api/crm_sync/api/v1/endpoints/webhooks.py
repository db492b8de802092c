"""
Endpoint de webhooks entrantes del CRM.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.api.v1.dependencies import get_sync_job
from crm_sync.application.dto.sync_dto import WebhookPayloadDTO, WebhookResultDTO
from crm_sync.application.use_cases.sync_use_cases import CrmSyncJob
from crm_sync.application.use_cases.webhook_use_cases import CrmWebhookUseCases, verify_webhook_secret
from crm_sync.infrastructure.database.session import get_db

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def _read_payload(request: Request) -> WebhookPayloadDTO:
    """Un cuerpo vacio o no-JSON se trata como payload sin campos (400 aguas abajo)."""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    return WebhookPayloadDTO(**body)


@router.post("/crm", response_model=WebhookResultDTO)
async def crm_webhook(
    request: Request,
    x_crm_webhook_secret: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    job: CrmSyncJob = Depends(get_sync_job),
):
    """
    Recibe notificaciones de cambio del CRM y reconcilia el registro afectado.

    - 401: secreto configurado y header ausente o distinto
    - 400: falta module o record_id
    - 200: procesado, ignorado (modulo no soportado o registro inexistente) u omitido
    - 500: el CRM fallo al leer el registro
    """
    verify_webhook_secret(x_crm_webhook_secret)
    payload = await _read_payload(request)

    use_cases = CrmWebhookUseCases(db, job.crm, job.listing_engine, job.actor_engine)
    return await use_cases.handle(payload)
