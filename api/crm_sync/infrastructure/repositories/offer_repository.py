"""
Repositorio de ofertas y transacciones.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.database.models import OfferModel, TransactionModel
from crm_sync.shared.constants.sync_constants import OfferStatus


class OfferRepository:
    """Repositorio para ofertas (bids) y sus transacciones asociadas."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, offer_id: str) -> Optional[OfferModel]:
        return await self.db.get(OfferModel, offer_id)

    async def get_by_external_task_id(self, external_task_id: str) -> Optional[OfferModel]:
        """Obtiene la oferta vinculada a un Task del CRM."""
        result = await self.db.execute(
            select(OfferModel).where(OfferModel.external_task_id == external_task_id)
        )
        return result.scalars().first()

    async def pending_buyer_ids_for_listing(self, listing_id: str) -> List[str]:
        """Compradores distintos con una oferta PENDING sobre el listing."""
        result = await self.db.execute(
            select(OfferModel.buyer_id)
            .where(
                OfferModel.listing_id == listing_id,
                OfferModel.status == OfferStatus.PENDING.value,
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def get_transaction(self, transaction_id: str) -> Optional[TransactionModel]:
        return await self.db.get(TransactionModel, transaction_id)
