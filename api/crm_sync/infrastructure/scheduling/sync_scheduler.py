"""
Scheduler de jobs periodicos (APScheduler).

Un job por job_id: registrar de nuevo el mismo id reemplaza el anterior.
La coordinacion entre instancias no es responsabilidad del scheduler sino
de los advisory locks que toma cada job.
"""
from typing import Awaitable, Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger


class SyncScheduler:
    """Envoltorio de AsyncIOScheduler con start/stop idempotentes."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def register(
        self,
        job_id: str,
        func: Callable[[], Awaitable[None]],
        cron: str,
    ) -> None:
        """
        Registra (o reemplaza) un job con trigger cron de 5 campos.

        Raises:
            ValueError: expresion cron invalida
        """
        trigger = CronTrigger.from_crontab(cron, timezone="UTC")
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info(f"Job '{job_id}' programado con cron '{cron}'")

    def unregister(self, job_id: str) -> None:
        if self._scheduler.get_job(job_id):
            self._scheduler.remove_job(job_id)

    def job_ids(self) -> List[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def start(self) -> None:
        """Arranca el scheduler. Llamarlo dos veces no crea un segundo scheduler."""
        if self._started:
            return
        self._scheduler.start()
        self._started = True
        logger.info(f"Scheduler iniciado con jobs: {self.job_ids()}")

    def stop(self) -> None:
        if not self._started:
            return
        self._scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Scheduler detenido")
