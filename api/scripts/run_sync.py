"""
CLI: sync CRM -> base local, una corrida.

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) cuando el API corre sin scheduler.
  - Usa el mismo advisory lock que el job programado: si otra instancia ya
    esta sincronizando, sale sin hacer nada.

Variables de entorno requeridas:
  - CRM_CLIENT_ID, CRM_CLIENT_SECRET, CRM_REFRESH_TOKEN
  - DATABASE_URL (o DATABASE_HOST/PORT/USER/PASSWORD/NAME)

Ejecucion:
  python scripts/run_sync.py                 # delta de listings + actores
  python scripts/run_sync.py --mode full     # full de listings + actores
  python scripts/run_sync.py --skip-actors
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
# La carpeta "api" contiene el paquete raiz `crm_sync/`.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from crm_sync.application.services.notification_dispatcher import NotificationDispatcher  # noqa: E402
from crm_sync.application.use_cases.sync_use_cases import build_sync_job  # noqa: E402
from crm_sync.core.config import settings  # noqa: E402
from crm_sync.infrastructure.database.session import close_db  # noqa: E402
from crm_sync.shared.constants.sync_constants import SyncMode  # noqa: E402


async def _run(mode: SyncMode, skip_actors: bool) -> int:
    dispatcher = NotificationDispatcher()
    dispatcher.start()
    job = build_sync_job(dispatcher=dispatcher)
    exit_code = 0
    try:
        listings = await job.run_listings(mode)
        if listings is None:
            logger.warning("Sync de listings omitido: otra instancia tiene el lock")
        else:
            logger.info(f"Listings: {listings.model_dump(exclude_none=True)}")
            if listings.status == "error":
                exit_code = 1

        if not skip_actors:
            actors = await job.run_actors()
            if actors is not None:
                logger.info(f"Actores: {actors.model_dump(exclude_none=True)}")
                if actors.status == "error":
                    exit_code = 1
    finally:
        await dispatcher.stop(drain=True)
        await job.crm.aclose()
        await close_db()
    return exit_code


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync CRM -> base local")
    parser.add_argument(
        "--mode",
        choices=[SyncMode.DELTA.value, SyncMode.FULL.value],
        default=SyncMode.DELTA.value,
        help="delta (default) o full",
    )
    parser.add_argument(
        "--skip-actors",
        action="store_true",
        help="No ejecuta el sync de actores despues de los listings.",
    )
    args = parser.parse_args()

    if not settings.crm_configured:
        raise SystemExit("Faltan credenciales del CRM (CRM_CLIENT_ID, CRM_CLIENT_SECRET, CRM_REFRESH_TOKEN)")

    return asyncio.run(_run(SyncMode(args.mode), args.skip_actors))


if __name__ == "__main__":
    raise SystemExit(main())
