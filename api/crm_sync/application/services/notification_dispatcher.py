"""
Despacho desacoplado de notificaciones.

El sync solo encola; un worker asyncio persiste en segundo plano con su
propia sesion. Un fallo al notificar se registra y nunca llega al sync.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.application.services.notification_service import NotificationService
from crm_sync.core.config import settings


@dataclass(frozen=True)
class NotificationRequest:
    user_ids: List[str]
    type: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher:
    """Cola acotada + worker en background."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        *,
        maxsize: Optional[int] = None,
    ):
        if session_factory is None:
            from crm_sync.infrastructure.database.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else settings.NOTIFICATION_QUEUE_SIZE
        )
        self._worker: Optional[asyncio.Task] = None
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, request: NotificationRequest) -> bool:
        """Encola sin bloquear. Si la cola esta llena la notificacion se descarta."""
        if not request.user_ids:
            return False
        try:
            self._queue.put_nowait(request)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Cola de notificaciones llena; se descarta {request.type} para {len(request.user_ids)} usuarios")
            return False

    async def _deliver(self, request: NotificationRequest) -> None:
        try:
            async with self._session_factory() as db:
                created = await NotificationService(db).notify_many(
                    request.user_ids,
                    request.type,
                    request.title,
                    request.body,
                    request.data,
                )
            self.delivered += created
        except Exception as e:
            self.failed += 1
            logger.error(f"Error despachando notificacion {request.type}: {e}")

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                await self._deliver(request)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
        logger.info("Dispatcher de notificaciones iniciado")

    async def drain(self) -> None:
        """Procesa en linea lo que quede en la cola (sin worker: CLI y tests)."""
        while not self._queue.empty():
            request = self._queue.get_nowait()
            try:
                await self._deliver(request)
            finally:
                self._queue.task_done()

    async def stop(self, drain: bool = True) -> None:
        """Detiene el worker. Con drain=True primero vacia la cola."""
        if self._worker is None:
            if drain:
                await self.drain()
            return

        if drain and self.running:
            await self._queue.join()

        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Dispatcher de notificaciones detenido")

    def pending(self) -> int:
        return self._queue.qsize()


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
