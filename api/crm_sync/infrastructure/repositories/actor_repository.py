"""
Repositorio de actores (compradores/vendedores).
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.database.models import ActorModel, TransactionModel


class ActorRepository:
    """Repositorio para consultar y actualizar actores."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, actor_id: str) -> Optional[ActorModel]:
        return await self.db.get(ActorModel, actor_id)

    async def get_id_by_external_id(self, external_id: str) -> Optional[str]:
        """Resuelve external_id -> ID local sin cargar la entidad completa."""
        result = await self.db.execute(
            select(ActorModel.id).where(ActorModel.external_id == external_id)
        )
        return result.scalars().first()

    async def find_for_remote(self, auth_uid: Optional[str], external_id: str) -> Optional[Dict[str, Any]]:
        """
        Busca el actor local de un Contact remoto por UID de cuenta o por external_id.

        Returns:
            Snapshot (dict) de las columnas sincronizables, o None si no es usuario del marketplace
        """
        conditions = [ActorModel.external_id == external_id]
        if auth_uid:
            conditions.append(ActorModel.auth_uid == auth_uid)

        result = await self.db.execute(
            select(
                ActorModel.id,
                ActorModel.external_id,
                ActorModel.approved,
                ActorModel.contact_type,
                ActorModel.first_name,
                ActorModel.last_name,
                ActorModel.company_name,
                ActorModel.title,
                ActorModel.mailing_country,
                ActorModel.phone,
            )
            .where(or_(*conditions))
            .order_by(ActorModel.created_at)
            .limit(1)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def update_fields(self, actor_id: str, values: Dict[str, Any]) -> None:
        if not values:
            return
        await self.db.execute(
            update(ActorModel).where(ActorModel.id == actor_id).values(**values)
        )

    async def prior_counterparty_ids(self, seller_id: str, limit: int) -> List[str]:
        """
        Compradores distintos que ya cerraron transacciones con el vendedor.

        Args:
            seller_id: ID local del vendedor
            limit: maximo de compradores a retornar

        Returns:
            Lista de IDs locales de compradores (sin el propio vendedor)
        """
        result = await self.db.execute(
            select(TransactionModel.buyer_id)
            .where(
                TransactionModel.seller_id == seller_id,
                TransactionModel.buyer_id != seller_id,
            )
            .distinct()
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_notification_prefs(self, actor_ids: List[str]) -> Dict[str, Optional[dict]]:
        """Retorna las preferencias de notificacion de cada actor indicado."""
        if not actor_ids:
            return {}
        result = await self.db.execute(
            select(ActorModel.id, ActorModel.notification_prefs).where(ActorModel.id.in_(actor_ids))
        )
        return {row.id: row.notification_prefs for row in result}
