"""
Repositorio de watchlist.
"""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.database.models import WatchlistItemModel


class WatchlistRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def buyer_ids_for_listing(self, listing_id: str) -> List[str]:
        """Compradores que tienen el listing en su watchlist."""
        result = await self.db.execute(
            select(WatchlistItemModel.buyer_id)
            .where(WatchlistItemModel.listing_id == listing_id)
            .distinct()
        )
        return list(result.scalars().all())
