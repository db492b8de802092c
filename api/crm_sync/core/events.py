"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from loguru import logger

from crm_sync.application.services.notification_dispatcher import get_notification_dispatcher
from crm_sync.application.use_cases.sync_use_cases import CRM_SYNC_JOB_ID, build_sync_job
from crm_sync.core.config import settings
from crm_sync.infrastructure.database.session import close_db, init_db
from crm_sync.infrastructure.scheduling.sync_scheduler import SyncScheduler


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicacion."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            _validate_config()

            # Inicializar base de datos (crea tablas si no existen)
            await init_db()
            logger.info("Base de datos inicializada")

            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            dispatcher = get_notification_dispatcher()
            dispatcher.start()
            app.state.dispatcher = dispatcher

            app.state.sync_job = build_sync_job(dispatcher=dispatcher)

            scheduler = SyncScheduler()
            app.state.scheduler = scheduler
            if settings.SYNC_ENABLED and settings.crm_configured:
                scheduler.register(CRM_SYNC_JOB_ID, app.state.sync_job.run_scheduled, settings.SYNC_CRON)
                scheduler.start()
            else:
                logger.info("Sync programado deshabilitado (SYNC_ENABLED=false o CRM sin credenciales)")

            logger.success("Aplicacion iniciada correctamente")

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida que la configuracion critica este presente."""
    warnings = []

    if not settings.crm_configured:
        warnings.append("Credenciales del CRM incompletas - el sync no podra ejecutarse")
    if not settings.CRM_WEBHOOK_SECRET:
        warnings.append("CRM_WEBHOOK_SECRET no configurado - el webhook acepta peticiones sin verificar")

    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler:
            scheduler.stop()

        dispatcher = getattr(app.state, "dispatcher", None)
        if dispatcher:
            await dispatcher.stop(drain=True)

        sync_job = getattr(app.state, "sync_job", None)
        if sync_job:
            await sync_job.crm.aclose()

        # Cerrar conexiones de base de datos
        await close_db()
        logger.info("Conexiones de base de datos cerradas")

        logger.success("Aplicacion cerrada correctamente")

    return shutdown


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Ciclo de vida de la aplicacion: startup antes de servir, shutdown al cerrar."""
    await startup_handler(app)()
    try:
        yield
    finally:
        await shutdown_handler(app)()
