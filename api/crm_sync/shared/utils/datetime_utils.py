"""
Utilidades puras para manejo de fechas en UTC.

Se mantienen libres de I/O para poder testearlas fácilmente.
"""
from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    SQLite devuelve datetimes naive aunque la columna sea timezone=True;
    normalizamos para comparar/almacenar de forma consistente.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_crm_datetime(dt: datetime) -> str:
    """
    Serializa un datetime al formato ISO8601 con offset que acepta el CRM
    en criterios de busqueda y headers If-Modified-Since.
    """
    return ensure_utc(dt).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%S+00:00")
