"""
Casos de uso del webhook del CRM.

Cada evento trae {module, record_id, action}. El registro se vuelve a leer
del CRM (la fuente de verdad) y se reconcilia uno a uno, fuera del
scheduler y sin advisory lock: la atomicidad la da el upsert.
"""
import hmac
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.application.dto.sync_dto import WebhookPayloadDTO, WebhookResultDTO
from crm_sync.application.services.actor_sync import ActorSyncEngine
from crm_sync.application.services.listing_sync import ListingSyncEngine
from crm_sync.core.config import settings
from crm_sync.infrastructure.external.crm.crm_client import CrmApiError, CrmClient
from crm_sync.infrastructure.external.crm.field_mapper import map_offer_status
from crm_sync.infrastructure.repositories.offer_repository import OfferRepository
from crm_sync.shared.constants.sync_constants import CrmModule
from crm_sync.shared.exceptions.auth import UnauthorizedException
from crm_sync.shared.exceptions.domain import InvalidWebhookPayloadException
from crm_sync.shared.exceptions.integration import CrmIntegrationException
from crm_sync.shared.utils.datetime_utils import utc_now


def verify_webhook_secret(provided: Optional[str], expected: Optional[str] = None) -> None:
    """
    Valida el secreto compartido del webhook.

    Sin secreto configurado se acepta la peticion con un warning.

    Raises:
        UnauthorizedException: secreto configurado y header ausente o distinto
    """
    expected = settings.CRM_WEBHOOK_SECRET if expected is None else expected
    if not expected:
        logger.warning("CRM_WEBHOOK_SECRET no configurado: se acepta el webhook sin verificar")
        return
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise UnauthorizedException("Secreto de webhook invalido")


class CrmWebhookUseCases:
    """Despacha eventos del CRM al reconciliador de cada modulo."""

    def __init__(
        self,
        db: AsyncSession,
        crm: CrmClient,
        listing_engine: ListingSyncEngine,
        actor_engine: ActorSyncEngine,
    ):
        self.db = db
        self.crm = crm
        self.listing_engine = listing_engine
        self.actor_engine = actor_engine
        self.offer_repo = OfferRepository(db)

    async def handle(self, payload: WebhookPayloadDTO) -> WebhookResultDTO:
        missing = [name for name in ("module", "record_id") if not getattr(payload, name)]
        if missing:
            raise InvalidWebhookPayloadException(missing)

        module, record_id = payload.module, payload.record_id
        logger.info(f"Webhook del CRM: {module}/{record_id} ({payload.action or 'sin accion'})")

        handlers = {
            CrmModule.LISTINGS.value: self._reconcile_listing,
            CrmModule.ACTORS.value: self._reconcile_actor,
            CrmModule.WORK_ITEMS.value: self._reconcile_offer_status,
        }
        handler = handlers.get(module)
        if handler is None:
            return WebhookResultDTO(status="ignored", module=module, record_id=record_id, detail="Modulo no soportado")

        try:
            result = await handler(record_id)
        except CrmApiError as e:
            await self.db.rollback()
            logger.error(f"Webhook {module}/{record_id}: error del CRM: {e}")
            raise CrmIntegrationException(f"Error consultando el CRM: {e}", upstream_status=e.status_code) from e

        return result.model_copy(update={"module": module, "record_id": record_id})

    async def _reconcile_listing(self, record_id: str) -> WebhookResultDTO:
        remote = await self.crm.fetch_listing(record_id)
        if remote is None:
            return WebhookResultDTO(status="ignored", detail="Registro inexistente en el CRM")

        outcome = await self.listing_engine.upsert_listing(self.db, remote, utc_now())
        if outcome is None:
            return WebhookResultDTO(status="skipped", detail="Vendedor sin vincular")

        await self.db.commit()
        return WebhookResultDTO(status="processed")

    async def _reconcile_actor(self, record_id: str) -> WebhookResultDTO:
        remote = await self.crm.fetch_actor(record_id)
        if remote is None:
            return WebhookResultDTO(status="ignored", detail="Registro inexistente en el CRM")

        changed = await self.actor_engine.reconcile_actor(self.db, remote, utc_now(), link_by_auth_uid=False)
        if changed is None:
            return WebhookResultDTO(status="skipped", detail="Actor sin cuenta local")

        await self.db.commit()
        return WebhookResultDTO(status="processed" if changed else "unchanged")

    async def _reconcile_offer_status(self, record_id: str) -> WebhookResultDTO:
        remote = await self.crm.fetch_work_item(record_id)
        if remote is None:
            return WebhookResultDTO(status="ignored", detail="Registro inexistente en el CRM")

        offer = await self.offer_repo.get_by_external_task_id(record_id)
        if offer is None:
            return WebhookResultDTO(status="ignored", detail="Task sin oferta local")

        status = map_offer_status(remote.raw_status)
        if status is None:
            logger.warning(f"Estado de Task desconocido '{remote.raw_status}' para la oferta {offer.id}; se ignora")
            return WebhookResultDTO(status="ignored", detail="Estado desconocido")

        previous = offer.status
        if previous == status.value:
            return WebhookResultDTO(status="unchanged")

        offer.status = status.value
        await self.db.commit()
        logger.info(f"Oferta {offer.id}: {previous} -> {status.value}")
        return WebhookResultDTO(status="processed")
