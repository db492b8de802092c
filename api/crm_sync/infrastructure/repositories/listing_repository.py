"""
Repositorio de listings.
Maneja las operaciones de base de datos que necesita el sync sobre ListingModel.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import delete, exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.database.models import (
    ListingModel,
    OfferModel,
    TransactionModel,
    WatchlistItemModel,
)
from crm_sync.infrastructure.repositories._upsert import dialect_insert


class ListingRepository:
    """Repositorio para gestionar listings en la base de datos."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, listing_id: str) -> Optional[ListingModel]:
        """Obtiene un listing por su ID local."""
        return await self.db.get(ListingModel, listing_id)

    async def get_snapshot(self, external_id: str) -> Optional[Dict[str, Any]]:
        """
        Lee los valores previos de un listing como dict plano.

        El diff del sync delta se calcula contra este snapshot, por eso se
        toma antes de escribir.
        """
        result = await self.db.execute(
            select(
                ListingModel.id,
                ListingModel.price_per_unit,
                ListingModel.is_active,
                ListingModel.marketplace_visible,
            ).where(ListingModel.external_id == external_id)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def upsert_from_remote(
        self,
        *,
        external_id: str,
        seller_id: str,
        fields: Dict[str, Any],
        image_urls: List[str],
        coa_urls: List[str],
        synced_at: datetime,
    ) -> str:
        """
        UPSERT por external_id.

        Reglas:
        - En el insert se fija seller_id; en el update nunca se reasigna.
        - Las listas de adjuntos solo se sobreescriben si llegan con datos.
        - El conflicto lo resuelve la base (ON CONFLICT): ultimo commit gana.

        Returns:
            ID local del listing insertado o actualizado
        """
        values = {
            **fields,
            "external_id": external_id,
            "seller_id": seller_id,
            "image_urls": list(image_urls),
            "coa_urls": list(coa_urls),
            "last_synced_at": synced_at,
        }

        update_values = {**fields, "last_synced_at": synced_at, "updated_at": synced_at}
        if image_urls:
            update_values["image_urls"] = list(image_urls)
        if coa_urls:
            update_values["coa_urls"] = list(coa_urls)

        stmt = dialect_insert(self.db, ListingModel.__table__).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ListingModel.__table__.c.external_id],
            set_=update_values,
        ).returning(ListingModel.__table__.c.id)

        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def deactivate_missing(self, present_external_ids: Set[str], synced_at: datetime) -> int:
        """
        Reconciliacion de borrados en full sync:
        desactiva listings activos cuyo external_id no vino en el set remoto.

        Listings sin external_id (solo locales) no se tocan.
        """
        stmt = (
            update(ListingModel)
            .where(
                ListingModel.is_active.is_(True),
                ListingModel.external_id.is_not(None),
                ListingModel.external_id.not_in(list(present_external_ids)),
            )
            .values(is_active=False, last_synced_at=synced_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def ids_with_dependents(self, external_ids: Iterable[str]) -> Set[str]:
        """
        Retorna los IDs locales (de entre los external_ids dados) que tienen
        filas hijas: ofertas o transacciones. Una sola consulta para todo el lote.
        """
        ids = list(external_ids)
        if not ids:
            return set()

        has_offers = exists().where(OfferModel.listing_id == ListingModel.id)
        has_transactions = exists().where(TransactionModel.listing_id == ListingModel.id)
        result = await self.db.execute(
            select(ListingModel.id).where(
                ListingModel.external_id.in_(ids),
                or_(has_offers, has_transactions),
            )
        )
        return set(result.scalars().all())

    async def deactivate_by_ids(self, listing_ids: Iterable[str], synced_at: datetime) -> int:
        """Desactiva (soft) los listings indicados."""
        ids = list(listing_ids)
        if not ids:
            return 0
        result = await self.db.execute(
            update(ListingModel)
            .where(ListingModel.id.in_(ids))
            .values(is_active=False, last_synced_at=synced_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_by_external_ids(self, external_ids: Iterable[str], exclude_ids: Iterable[str]) -> int:
        """Borra (hard) los listings de external_ids, excluyendo los IDs locales dados."""
        ids = list(external_ids)
        if not ids:
            return 0
        excluded = list(exclude_ids)

        doomed = select(ListingModel.id).where(ListingModel.external_id.in_(ids))
        if excluded:
            doomed = doomed.where(ListingModel.id.not_in(excluded))

        # Las entradas de watchlist no cuentan como dependientes: se van con el listing
        await self.db.execute(
            delete(WatchlistItemModel)
            .where(WatchlistItemModel.listing_id.in_(doomed))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(
            delete(ListingModel)
            .where(ListingModel.id.in_(doomed))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
