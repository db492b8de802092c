"""
Repositorio de notificaciones in-app.
"""
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.database.models import NotificationModel


class NotificationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_many(self, rows: List[Dict[str, Any]]) -> int:
        """Inserta notificaciones en bloque. Retorna cuantas se crearon."""
        for row in rows:
            self.db.add(NotificationModel(**row))
        await self.db.flush()
        return len(rows)
