"""
Tests de la propagacion local -> CRM.
"""
import pytest
import pytest_asyncio

from crm_sync.application.services.outbound_propagator import (
    OutboundPropagator,
    calculate_proximity,
)
from crm_sync.core.config import settings
from crm_sync.infrastructure.database.models import ListingModel, OfferModel, TransactionModel
from crm_sync.shared.exceptions.domain import EntityNotFoundException, ValidationException


async def reload(session_factory, model, entity_id):
    async with session_factory() as db:
        return await db.get(model, entity_id)


@pytest.fixture
def propagator(db_session, fake_crm):
    return OutboundPropagator(db_session, fake_crm)


@pytest_asyncio.fixture
async def listing(seed):
    seller = await seed.actor(external_id="C-SELLER")
    return await seed.listing(seller, external_id="P-1", price_per_unit=5.0, grams_available=1000.0)


def test_proximity_score():
    assert calculate_proximity(4.5, 5.0) == 90.0
    assert calculate_proximity(5.5, 5.0) == 90.0
    assert calculate_proximity(20.0, 5.0) == 0.0
    assert calculate_proximity(4.0, None) == 0.0


class TestListingUpdates:
    @pytest.mark.asyncio
    async def test_pushes_only_changed_fields(self, propagator, fake_crm, listing, session_factory):
        pushed = await propagator.push_listing_update(listing.id, {"price_per_unit": 4.0, "grams_available": 1000.0})

        assert pushed is True
        assert fake_crm.updates == [("Products", "P-1", {"Unit_Price": 4.0})]
        assert (await reload(session_factory, ListingModel, listing.id)).price_per_unit == 4.0

    @pytest.mark.asyncio
    async def test_no_changes_means_no_push(self, propagator, fake_crm, listing):
        pushed = await propagator.push_listing_update(listing.id, {"price_per_unit": 5.0})

        assert pushed is False
        assert fake_crm.updates == []

    @pytest.mark.asyncio
    async def test_crm_failure_keeps_local_change(self, propagator, fake_crm, listing, session_factory):
        fake_crm.fail_writes = True

        pushed = await propagator.push_listing_update(listing.id, {"upcoming_qty": 250.0})

        assert pushed is False
        assert (await reload(session_factory, ListingModel, listing.id)).upcoming_qty == 250.0

    @pytest.mark.asyncio
    async def test_rejects_non_editable_fields(self, propagator, listing):
        with pytest.raises(ValidationException):
            await propagator.push_listing_update(listing.id, {"name": "Otro"})

    @pytest.mark.asyncio
    async def test_unknown_listing(self, propagator):
        with pytest.raises(EntityNotFoundException):
            await propagator.push_listing_update("no-existe", {"price_per_unit": 1.0})

    @pytest.mark.asyncio
    async def test_local_only_listing_is_not_pushed(self, propagator, fake_crm, seed):
        seller = await seed.actor()
        local = await seed.listing(seller, external_id=None, price_per_unit=5.0)

        pushed = await propagator.push_listing_update(local.id, {"price_per_unit": 6.0})

        assert pushed is False
        assert fake_crm.updates == []

    @pytest.mark.asyncio
    async def test_listing_updates_in_same_session_see_previous_write(self, propagator, fake_crm, listing):
        await propagator.push_listing_update(listing.id, {"price_per_unit": 4.0})
        pushed_again = await propagator.push_listing_update(listing.id, {"price_per_unit": 4.0})

        assert pushed_again is False
        assert len(fake_crm.updates) == 1


class TestVisibility:
    @pytest.mark.asyncio
    async def test_coupled_mode_pushes_active_flag(self, propagator, fake_crm, listing, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "VISIBILITY_MODE", "coupled")

        await propagator.set_listing_active(listing.id, False)

        stored = await reload(session_factory, ListingModel, listing.id)
        assert (stored.is_active, stored.marketplace_visible) == (False, False)
        assert fake_crm.updates == [("Products", "P-1", {"Product_Active": False})]

    @pytest.mark.asyncio
    async def test_decoupled_mode_never_touches_crm(self, propagator, fake_crm, listing, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "VISIBILITY_MODE", "decoupled")

        await propagator.set_listing_active(listing.id, False)

        stored = await reload(session_factory, ListingModel, listing.id)
        assert (stored.is_active, stored.marketplace_visible) == (True, False)
        assert fake_crm.updates == []


class TestOfferWorkItems:
    @pytest.mark.asyncio
    async def test_creates_task_and_stores_its_id(self, propagator, fake_crm, listing, seed, session_factory):
        buyer = await seed.actor(external_id="C-BUYER", company_name="Acme")
        offer = await seed.offer(listing, buyer, price_per_unit=4.5, quantity=100.0, total_value=450.0)

        task_id = await propagator.create_offer_work_item(offer.id)

        assert task_id == "REMOTE-NEW-1"
        module, fields = fake_crm.created[0]
        assert module == "Tasks"
        assert fields["Subject"] == "New Bid - Listing P-1 - Acme"
        assert fields["Priority"] == "High"
        assert fields["What_Id"] == "P-1"
        assert fields["Who_Id"] == "C-BUYER"
        assert fields["Bid_Status"] == "Pending"
        stored = await reload(session_factory, OfferModel, offer.id)
        assert stored.external_task_id == "REMOTE-NEW-1"
        assert stored.proximity_score == 90.0

    @pytest.mark.asyncio
    async def test_task_creation_failure_returns_none(self, propagator, fake_crm, listing, seed, session_factory):
        buyer = await seed.actor()
        offer = await seed.offer(listing, buyer)
        fake_crm.fail_writes = True

        assert await propagator.create_offer_work_item(offer.id) is None
        assert (await reload(session_factory, OfferModel, offer.id)).external_task_id is None

    @pytest.mark.asyncio
    async def test_accept_updates_offer_and_task(self, propagator, fake_crm, listing, seed, session_factory):
        buyer = await seed.actor()
        offer = await seed.offer(listing, buyer, external_task_id="T-1")

        pushed = await propagator.update_offer_work_item_status(offer.id, "accept")

        assert pushed is True
        assert (await reload(session_factory, OfferModel, offer.id)).status == "ACCEPTED"
        assert fake_crm.updates == [("Tasks", "T-1", {"Status": "Completed", "Bid_Status": "Accepted"})]

    @pytest.mark.asyncio
    async def test_status_update_uses_task_created_in_same_session(self, propagator, fake_crm, listing, seed):
        buyer = await seed.actor()
        offer = await seed.offer(listing, buyer)
        fake_crm.next_created_id = "T-9"

        await propagator.create_offer_work_item(offer.id)
        pushed = await propagator.update_offer_work_item_status(offer.id, "reject")

        assert pushed is True
        assert fake_crm.updates == [("Tasks", "T-9", {"Status": "Completed", "Bid_Status": "Rejected"})]

    @pytest.mark.asyncio
    async def test_invalid_action(self, propagator, listing, seed):
        buyer = await seed.actor()
        offer = await seed.offer(listing, buyer)

        with pytest.raises(ValidationException):
            await propagator.update_offer_work_item_status(offer.id, "counter")


class TestDeals:
    @pytest.mark.asyncio
    async def test_disabled_deals_do_nothing(self, propagator, fake_crm, listing, seed, monkeypatch):
        monkeypatch.setattr(settings, "CRM_DEALS_ENABLED", False)
        buyer = await seed.actor()
        transaction = await seed.transaction(listing, buyer, await seed.actor())

        assert await propagator.create_deal(transaction.id) is None
        assert await propagator.update_deal_stage(transaction.id, "Closed Lost") is None
        assert fake_crm.created == []

    @pytest.mark.asyncio
    async def test_enabled_deal_is_created_and_moved(self, propagator, fake_crm, listing, seed, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "CRM_DEALS_ENABLED", True)
        fake_crm.next_created_id = "D-1"
        buyer = await seed.actor(external_id="C-BUYER", company_name="Acme")
        seller = await seed.actor()
        transaction = await seed.transaction(listing, buyer, seller)

        deal_id = await propagator.create_deal(transaction.id)
        moved = await propagator.update_deal_stage(transaction.id, "Closed Lost")

        assert deal_id == "D-1"
        assert fake_crm.created[0][0] == "Deals"
        assert fake_crm.created[0][1]["Deal_Name"] == "Listing P-1 - Acme"
        assert (await reload(session_factory, TransactionModel, transaction.id)).external_deal_id == "D-1"
        assert moved is True
        assert fake_crm.updates == [("Deals", "D-1", {"Stage": "Closed Lost"})]
