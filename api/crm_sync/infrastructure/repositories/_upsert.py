"""
Helper de INSERT ... ON CONFLICT segun el dialecto de la sesion.

PostgreSQL en produccion y SQLite en tests soportan la misma clausula,
pero SQLAlchemy expone una construccion distinta por dialecto.
"""
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(session: AsyncSession, table):
    """Retorna un `insert()` con soporte on_conflict_do_update para la sesion."""
    dialect_name = session.bind.dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upsert no soportado para el dialecto '{dialect_name}'")
