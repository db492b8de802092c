"""
Configuración de fixtures para pytest.
"""
import uuid
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crm_sync.infrastructure.database.models import (
    ActorModel,
    ListingModel,
    OfferModel,
    TransactionModel,
    WatchlistItemModel,
)
from crm_sync.infrastructure.database.session import Base
from crm_sync.infrastructure.external.crm.crm_client import CrmApiError
from crm_sync.infrastructure.external.crm.types import (
    ListingAttachments,
    RemoteActor,
    RemoteListing,
    RemoteWorkItem,
)


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Session factory sobre una base en memoria por test.
    StaticPool comparte la unica conexion entre sesiones sucesivas.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sesión de base de datos para tests."""
    async with session_factory() as session:
        yield session


class FakeCrmClient:
    """
    Doble del CrmClient con datos en memoria.

    Los payloads se guardan crudos (como los devolveria la API) y se
    convierten a los tipos remotos igual que el cliente real.
    """

    def __init__(self):
        self.listings: List[Dict[str, Any]] = []
        self.modified: List[Dict[str, Any]] = []
        self.deleted_ids: List[str] = []
        self.attachments: Dict[str, ListingAttachments] = {}
        self.actors: List[Dict[str, Any]] = []
        self.work_items: Dict[str, Dict[str, Any]] = {}
        self.fail_fetch_all: Optional[Exception] = None
        self.fail_fetch_modified: Optional[Exception] = None
        self.fail_fetch_deleted: Optional[Exception] = None
        self.fail_attachments = False
        self.fail_single_fetch: Optional[Exception] = None
        self.fail_writes = False
        self.modified_since_calls: List[Any] = []
        self.deleted_since_calls: List[Any] = []
        self.updates: List[tuple] = []
        self.created: List[tuple] = []
        self.next_created_id = "REMOTE-NEW-1"
        self.closed = False

    async def fetch_all_listings(self):
        if self.fail_fetch_all:
            raise self.fail_fetch_all
        return [RemoteListing.from_payload(p) for p in self.listings]

    async def fetch_listings_modified_since(self, since):
        self.modified_since_calls.append(since)
        if self.fail_fetch_modified:
            raise self.fail_fetch_modified
        return [RemoteListing.from_payload(p) for p in self.modified]

    async def fetch_deleted_listing_ids(self, since):
        self.deleted_since_calls.append(since)
        if self.fail_fetch_deleted:
            raise self.fail_fetch_deleted
        return list(self.deleted_ids)

    async def fetch_listing_attachments(self, external_id):
        if self.fail_attachments:
            raise CrmApiError("adjuntos no disponibles", status_code=500)
        return self.attachments.get(external_id, ListingAttachments())

    async def fetch_listing(self, external_id):
        if self.fail_single_fetch:
            raise self.fail_single_fetch
        for payload in self.listings + self.modified:
            if payload.get("id") == external_id:
                return RemoteListing.from_payload(payload)
        return None

    async def fetch_marketplace_actors(self):
        return [RemoteActor.from_payload(p) for p in self.actors]

    async def fetch_actor(self, external_id):
        if self.fail_single_fetch:
            raise self.fail_single_fetch
        for payload in self.actors:
            if payload.get("id") == external_id:
                return RemoteActor.from_payload(payload)
        return None

    async def fetch_work_item(self, external_id):
        if self.fail_single_fetch:
            raise self.fail_single_fetch
        payload = self.work_items.get(external_id)
        return RemoteWorkItem.from_payload(payload) if payload else None

    async def update_record(self, module, external_id, fields):
        if self.fail_writes:
            raise CrmApiError("CRM caido", status_code=503)
        self.updates.append((module, external_id, fields))

    async def create_record(self, module, fields):
        if self.fail_writes:
            raise CrmApiError("CRM caido", status_code=503)
        self.created.append((module, fields))
        return self.next_created_id

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_crm() -> FakeCrmClient:
    return FakeCrmClient()


def listing_payload(external_id: str, seller_external_id: str = "C-SELLER", **fields) -> Dict[str, Any]:
    """Payload de Products como lo devuelve el CRM."""
    payload = {
        "id": external_id,
        "Product_Name": f"Listing {external_id}",
        "Product_Active": True,
        "Min_Request_G_Including_5_markup": 5.0,
        "Contact_Name": {"id": seller_external_id, "name": "Seller"},
    }
    payload.update(fields)
    return payload


@pytest.fixture
def make_listing_payload():
    return listing_payload


@pytest.fixture
def seed(db_session):
    """Helpers para poblar la base de prueba."""

    class Seed:
        async def actor(self, external_id: Optional[str] = None, **fields) -> ActorModel:
            actor = ActorModel(
                external_id=external_id,
                email=fields.pop("email", f"{uuid.uuid4().hex[:10]}@example.com"),
                **fields,
            )
            db_session.add(actor)
            await db_session.commit()
            return actor

        async def listing(self, seller: ActorModel, external_id: Optional[str] = None, **fields) -> ListingModel:
            values = {"name": f"Listing {external_id}", "is_active": True, "marketplace_visible": True}
            values.update(fields)
            listing = ListingModel(external_id=external_id, seller_id=seller.id, **values)
            db_session.add(listing)
            await db_session.commit()
            return listing

        async def offer(self, listing: ListingModel, buyer: ActorModel, **fields) -> OfferModel:
            values = {"price_per_unit": 4.5, "quantity": 100.0, "total_value": 450.0}
            values.update(fields)
            offer = OfferModel(listing_id=listing.id, buyer_id=buyer.id, **values)
            db_session.add(offer)
            await db_session.commit()
            return offer

        async def transaction(self, listing: ListingModel, buyer: ActorModel, seller: ActorModel, **fields) -> TransactionModel:
            values = {"quantity": 100.0, "price_per_unit": 5.0, "total_value": 500.0}
            values.update(fields)
            transaction = TransactionModel(
                listing_id=listing.id, buyer_id=buyer.id, seller_id=seller.id, **values
            )
            db_session.add(transaction)
            await db_session.commit()
            return transaction

        async def watch(self, listing: ListingModel, buyer: ActorModel) -> WatchlistItemModel:
            item = WatchlistItemModel(listing_id=listing.id, buyer_id=buyer.id)
            db_session.add(item)
            await db_session.commit()
            return item

    return Seed()


class FakeLockManager:
    """Advisory locks en memoria: los lock_id en `held` simulan otra instancia."""

    def __init__(self):
        self.held = set()
        self.runs = []

    async def run_guarded(self, lock_id, job_name, fn):
        if lock_id in self.held:
            return None
        self.runs.append(job_name)
        return await fn()


@pytest.fixture
def lock_manager() -> FakeLockManager:
    return FakeLockManager()


@pytest.fixture
def sync_job(fake_crm, session_factory, lock_manager):
    from crm_sync.application.use_cases.sync_use_cases import build_sync_job

    return build_sync_job(crm=fake_crm, session_factory=session_factory, lock_manager=lock_manager)


@pytest_asyncio.fixture
async def api_client(session_factory, sync_job) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Cliente HTTP contra la app, con la base de prueba y el CRM falso inyectados."""
    from main import create_application
    from crm_sync.api.v1.dependencies import get_sync_job
    from crm_sync.infrastructure.database.session import get_db

    app = create_application()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_job] = lambda: sync_job

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
