"""
Advisory locks de PostgreSQL para jobs programados.

Evita ejecuciones simultaneas del mismo job entre instancias redundantes.
El lock es de sesion: se toma en una conexion dedicada que se mantiene
abierta hasta `release()`. Si el proceso muere, la conexion se cierra y
PostgreSQL libera el lock solo.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional, TypeVar

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

T = TypeVar("T")


class AdvisoryLockManager:
    """
    Gestor de advisory locks.

    Un lock_id solo puede estar tomado una vez por proceso: la conexion que
    lo sostiene se guarda hasta liberarlo.
    """

    def __init__(self, engine: Optional[AsyncEngine] = None):
        if engine is None:
            from crm_sync.infrastructure.database.session import engine as default_engine

            engine = default_engine
        self._engine = engine
        self._held: Dict[int, AsyncConnection] = {}

    async def _connect(self) -> AsyncConnection:
        return await self._engine.connect()

    def is_held(self, lock_id: int) -> bool:
        return lock_id in self._held

    async def try_acquire(self, lock_id: int) -> bool:
        """
        Intenta tomar el lock sin bloquear (un solo round-trip).

        Returns:
            True si el lock quedo tomado por esta instancia
        """
        if lock_id in self._held:
            return False

        conn = await self._connect()
        try:
            result = await conn.execute(
                text("SELECT pg_try_advisory_lock(:lock_id) AS locked"),
                {"lock_id": lock_id},
            )
            locked = bool(result.scalar())
        except Exception:
            await conn.close()
            raise

        if not locked:
            await conn.close()
            return False

        self._held[lock_id] = conn
        return True

    async def release(self, lock_id: int) -> None:
        """
        Libera el lock y cierra su conexion.
        Los errores se registran y no se propagan: si la conexion se pierde,
        PostgreSQL ya libero el lock de sesion.
        """
        conn = self._held.pop(lock_id, None)
        if conn is None:
            return

        try:
            await conn.execute(
                text("SELECT pg_advisory_unlock(:lock_id)"),
                {"lock_id": lock_id},
            )
        except Exception as e:
            logger.error(f"Error liberando advisory lock {lock_id}: {e}")
            # La conexion no vuelve al pool con el lock de sesion tomado
            try:
                await conn.invalidate()
            except Exception as invalidate_error:
                logger.error(f"Error invalidando conexion del advisory lock {lock_id}: {invalidate_error}")
        finally:
            try:
                await conn.close()
            except Exception as e:
                logger.error(f"Error cerrando conexion del advisory lock {lock_id}: {e}")

    async def run_guarded(
        self,
        lock_id: int,
        job_name: str,
        fn: Callable[[], Awaitable[T]],
    ) -> Optional[T]:
        """
        Ejecuta `fn` solo si esta instancia obtiene el lock.

        Returns:
            Resultado de `fn`, o None si otra instancia tiene el lock
        """
        if not await self.try_acquire(lock_id):
            logger.info(f"[{job_name}] Lock {lock_id} ocupado por otra instancia. Se omite esta corrida.")
            return None

        try:
            return await fn()
        finally:
            await self.release(lock_id)


_lock_manager: Optional[AdvisoryLockManager] = None


def get_lock_manager() -> AdvisoryLockManager:
    """Instancia compartida del gestor (una por proceso)."""
    global _lock_manager
    if _lock_manager is None:
        _lock_manager = AdvisoryLockManager()
    return _lock_manager

