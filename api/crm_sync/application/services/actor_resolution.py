"""
Resolucion external actor id -> actor local.
"""
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.infrastructure.repositories.actor_repository import ActorRepository


class ActorResolutionCache:
    """
    Cache en memoria de external_id -> ID local de actor.

    Vive lo que vive el proceso y no expira entradas: un actor vinculado
    no cambia de ID local. `clear()` permite reiniciarlo (tests, admin).
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}

    def get(self, external_id: str) -> Optional[str]:
        return self._entries.get(external_id)

    def set(self, external_id: str, actor_id: str) -> None:
        self._entries[external_id] = actor_id

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ActorResolver:
    """Resuelve vendedores: primero cache, luego base de datos."""

    def __init__(self, cache: ActorResolutionCache):
        self.cache = cache

    async def resolve(self, db: AsyncSession, external_id: Optional[str]) -> Optional[str]:
        """
        Returns:
            ID local del actor, o None si todavia no esta vinculado
        """
        if not external_id:
            return None

        cached = self.cache.get(external_id)
        if cached:
            return cached

        actor_id = await ActorRepository(db).get_id_by_external_id(external_id)
        if actor_id:
            self.cache.set(external_id, actor_id)
        return actor_id
