"""
Tests unitarios del AdvisoryLockManager.

Se simula PostgreSQL con un registro en memoria de locks de sesion: cada
conexion falsa puede tomar un lock si nadie mas lo tiene.
"""
from __future__ import annotations

from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from crm_sync.infrastructure.locks.advisory_lock import AdvisoryLockManager
from crm_sync.shared.constants.sync_constants import LockIds


class FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):
        return self._value


class FakeLockServer:
    """Locks de sesion: lock_id -> conexion duena."""

    def __init__(self):
        self.owners: Dict[int, "FakeConnection"] = {}
        self.connections: List["FakeConnection"] = []


class FakeConnection:
    def __init__(self, server: FakeLockServer, fail_unlock: bool = False):
        self.server = server
        self.fail_unlock = fail_unlock
        self.closed = False
        self.invalidated = False
        self.statements: List[str] = []

    async def execute(self, statement, params):
        sql = str(statement)
        self.statements.append(sql)
        lock_id = params["lock_id"]
        if "pg_try_advisory_lock" in sql:
            owner = self.server.owners.get(lock_id)
            if owner is None or owner.closed:
                self.server.owners[lock_id] = self
                return FakeResult(True)
            return FakeResult(owner is self)
        if "pg_advisory_unlock" in sql:
            if self.fail_unlock:
                raise ConnectionError("conexion perdida")
            if self.server.owners.get(lock_id) is self:
                del self.server.owners[lock_id]
            return FakeResult(True)
        raise AssertionError(f"SQL inesperado: {sql}")

    async def invalidate(self):
        self.invalidated = True

    async def close(self):
        self.closed = True
        # Cerrar la sesion libera sus locks
        for lock_id, owner in list(self.server.owners.items()):
            if owner is self:
                del self.server.owners[lock_id]


class FakeEngine:
    def __init__(self, server: FakeLockServer, fail_unlock: bool = False):
        self.server = server
        self.fail_unlock = fail_unlock

    async def connect(self):
        conn = FakeConnection(self.server, fail_unlock=self.fail_unlock)
        self.server.connections.append(conn)
        return conn


@pytest.fixture
def server() -> FakeLockServer:
    return FakeLockServer()


@pytest.mark.asyncio
async def test_only_one_instance_holds_the_lock(server) -> None:
    instance_a = AdvisoryLockManager(FakeEngine(server))
    instance_b = AdvisoryLockManager(FakeEngine(server))

    assert await instance_a.try_acquire(LockIds.CRM_SYNC) is True
    assert await instance_b.try_acquire(LockIds.CRM_SYNC) is False

    await instance_a.release(LockIds.CRM_SYNC)

    assert await instance_b.try_acquire(LockIds.CRM_SYNC) is True
    await instance_b.release(LockIds.CRM_SYNC)


@pytest.mark.asyncio
async def test_distinct_lock_ids_do_not_compete(server) -> None:
    instance_a = AdvisoryLockManager(FakeEngine(server))
    instance_b = AdvisoryLockManager(FakeEngine(server))

    assert await instance_a.try_acquire(LockIds.CRM_SYNC) is True
    assert await instance_b.try_acquire(LockIds.ACTOR_SYNC) is True


@pytest.mark.asyncio
async def test_failed_acquire_closes_its_connection(server) -> None:
    instance_a = AdvisoryLockManager(FakeEngine(server))
    instance_b = AdvisoryLockManager(FakeEngine(server))
    await instance_a.try_acquire(LockIds.CRM_SYNC)

    await instance_b.try_acquire(LockIds.CRM_SYNC)

    assert server.connections[1].closed is True
    assert instance_b.is_held(LockIds.CRM_SYNC) is False


@pytest.mark.asyncio
async def test_release_errors_are_swallowed(server) -> None:
    manager = AdvisoryLockManager(FakeEngine(server, fail_unlock=True))
    await manager.try_acquire(LockIds.CRM_SYNC)

    await manager.release(LockIds.CRM_SYNC)

    conn = server.connections[0]
    assert conn.invalidated is True
    assert conn.closed is True
    assert manager.is_held(LockIds.CRM_SYNC) is False
    # Con la conexion cerrada, otra instancia puede tomar el lock
    other = AdvisoryLockManager(FakeEngine(server))
    assert await other.try_acquire(LockIds.CRM_SYNC) is True


@pytest.mark.asyncio
async def test_release_without_acquire_is_a_noop(server) -> None:
    manager = AdvisoryLockManager(FakeEngine(server))

    await manager.release(LockIds.CRM_SYNC)

    assert server.connections == []


@pytest.mark.asyncio
async def test_run_guarded_skips_body_on_lock_miss(server) -> None:
    holder = AdvisoryLockManager(FakeEngine(server))
    await holder.try_acquire(LockIds.CRM_SYNC)
    body = AsyncMock(return_value="ran")

    result = await AdvisoryLockManager(FakeEngine(server)).run_guarded(LockIds.CRM_SYNC, "crm-sync", body)

    assert result is None
    body.assert_not_called()


@pytest.mark.asyncio
async def test_run_guarded_releases_after_failure(server) -> None:
    manager = AdvisoryLockManager(FakeEngine(server))
    body = AsyncMock(side_effect=RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        await manager.run_guarded(LockIds.CRM_SYNC, "crm-sync", body)

    assert LockIds.CRM_SYNC not in server.owners
    assert manager.is_held(LockIds.CRM_SYNC) is False


@pytest.mark.asyncio
async def test_run_guarded_returns_body_result(server) -> None:
    manager = AdvisoryLockManager(FakeEngine(server))

    result: Optional[str] = await manager.run_guarded(LockIds.CRM_SYNC, "crm-sync", AsyncMock(return_value="ok"))

    assert result == "ok"
    assert server.owners == {}
