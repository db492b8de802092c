"""
Persistencia de notificaciones in-app con filtro por preferencias.
"""
from typing import Any, Dict, Iterable, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.repositories.actor_repository import ActorRepository
from crm_sync.infrastructure.repositories.notification_repository import NotificationRepository
from crm_sync.shared.constants.sync_constants import DEFAULT_NOTIFICATION_PREFS


def wants_notification(prefs: Optional[Dict[str, Any]], notification_type: str) -> bool:
    """Las preferencias del actor sobreescriben los defaults por tipo."""
    merged = {**DEFAULT_NOTIFICATION_PREFS, **(prefs or {})}
    return bool(merged.get(notification_type, True))


class NotificationService:
    """Crea notificaciones para un conjunto de actores."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.actor_repo = ActorRepository(db)
        self.notification_repo = NotificationRepository(db)

    async def notify_many(
        self,
        user_ids: Iterable[str],
        notification_type: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Persiste una notificacion por actor que la tenga habilitada.

        Returns:
            Cantidad de notificaciones creadas
        """
        recipients = list(dict.fromkeys(user_ids))
        if not recipients:
            return 0

        prefs = await self.actor_repo.get_notification_prefs(recipients)
        rows = [
            {
                "user_id": user_id,
                "type": notification_type,
                "title": title,
                "body": body,
                "data": data,
            }
            for user_id in recipients
            if user_id in prefs and wants_notification(prefs[user_id], notification_type)
        ]

        skipped = len(recipients) - len(rows)
        if skipped:
            logger.debug(f"{skipped} destinatarios omitidos para {notification_type} (preferencias o inexistentes)")

        created = await self.notification_repo.create_many(rows)
        await self.db.commit()
        return created
