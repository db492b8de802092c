"""
Propagacion de escrituras locales hacia el CRM.

Regla: primero se confirma el cambio local, despues se empuja al CRM en
modo best effort. Un fallo remoto se registra y nunca revierte lo local.
Solo se envian los campos que cambiaron.
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm_sync.core.config import settings
from crm_sync.infrastructure.external.crm.crm_client import CrmClient
from crm_sync.infrastructure.repositories.actor_repository import ActorRepository
from crm_sync.infrastructure.repositories.listing_repository import ListingRepository
from crm_sync.infrastructure.repositories.offer_repository import OfferRepository
from crm_sync.shared.constants.sync_constants import CrmModule, OfferStatus
from crm_sync.shared.exceptions.domain import EntityNotFoundException, ValidationException
from crm_sync.shared.utils.visibility import is_coupled_mode

# columna local -> campo del CRM editable por el vendedor
LISTING_PUSH_FIELDS = {
    "price_per_unit": "Unit_Price",
    "grams_available": "Grams_Available",
    "upcoming_qty": "Upcoming_QTY",
}

OFFER_ACTIONS = {
    "accept": (OfferStatus.ACCEPTED, "Accepted"),
    "reject": (OfferStatus.REJECTED, "Rejected"),
}

DEAL_STAGES = ("Closed Won", "Closed Lost")

HIGH_PRIORITY_PROXIMITY = 80


def calculate_proximity(bid_price: float, asking_price: Optional[float]) -> float:
    """Cercania (0-100) entre el precio ofertado y el precio pedido."""
    if not asking_price or asking_price <= 0:
        return 0.0
    gap = abs(asking_price - bid_price) / asking_price
    return round(max(0.0, 100.0 * (1 - gap)), 1)


class OutboundPropagator:
    """Escrituras locales con espejo best effort en el CRM."""

    def __init__(self, db: AsyncSession, crm: CrmClient):
        self.db = db
        self.crm = crm
        self.listing_repo = ListingRepository(db)
        self.actor_repo = ActorRepository(db)
        self.offer_repo = OfferRepository(db)

    async def _push(self, module: CrmModule, external_id: Optional[str], fields: Dict[str, Any]) -> bool:
        if not external_id or not fields:
            return False
        try:
            await self.crm.update_record(module.value, external_id, fields)
            return True
        except Exception as e:
            logger.error(f"No se pudo propagar {module.value}/{external_id} al CRM: {e}")
            return False

    async def push_listing_update(self, listing_id: str, updates: Dict[str, Any]) -> bool:
        """
        Actualiza precio / gramos / cantidad futura y los empuja al CRM.

        Returns:
            True si el CRM acepto el cambio
        """
        unknown = set(updates) - set(LISTING_PUSH_FIELDS)
        if unknown:
            raise ValidationException(f"Campos no editables: {', '.join(sorted(unknown))}")

        listing = await self.listing_repo.get_by_id(listing_id)
        if not listing:
            raise EntityNotFoundException("Listing", listing_id)

        external_id = listing.external_id
        changed = {key: value for key, value in updates.items() if getattr(listing, key) != value}
        if not changed:
            return False

        for key, value in changed.items():
            setattr(listing, key, value)
        await self.db.commit()

        remote_fields = {LISTING_PUSH_FIELDS[key]: value for key, value in changed.items()}
        return await self._push(CrmModule.LISTINGS, external_id, remote_fields)

    async def set_listing_active(self, listing_id: str, active: bool) -> bool:
        """
        Activa/desactiva un listing.

        coupled: cambia is_active y marketplace_visible localmente y empuja Product_Active.
        decoupled: solo cambia marketplace_visible; el CRM no se toca.
        """
        listing = await self.listing_repo.get_by_id(listing_id)
        if not listing:
            raise EntityNotFoundException("Listing", listing_id)
        external_id = listing.external_id

        if not is_coupled_mode():
            listing.marketplace_visible = active
            await self.db.commit()
            return False

        listing.is_active = active
        listing.marketplace_visible = active
        await self.db.commit()
        return await self._push(CrmModule.LISTINGS, external_id, {"Product_Active": active})

    async def create_offer_work_item(self, offer_id: str) -> Optional[str]:
        """
        Crea el Task del CRM para una oferta nueva y guarda su id.

        Returns:
            external_task_id, o None si el CRM fallo
        """
        offer = await self.offer_repo.get_by_id(offer_id)
        if not offer:
            raise EntityNotFoundException("Offer", offer_id)
        listing = await self.listing_repo.get_by_id(offer.listing_id)
        buyer = await self.actor_repo.get_by_id(offer.buyer_id)

        asking = listing.price_per_unit if listing else None
        proximity = calculate_proximity(offer.price_per_unit, asking)
        listing_name = listing.name if listing else "Unknown"
        company = (buyer.company_name if buyer else None) or "Unknown"

        description = "\n".join(
            line
            for line in (
                f"Product: {listing_name}",
                f"Bid: ${offer.price_per_unit}/unit x {offer.quantity}g = ${offer.total_value}",
                f"Seller Asking: ${asking if asking is not None else 'N/A'}/unit",
                f"Proximity: {proximity}%",
                f"Buyer Notes: {offer.notes}" if offer.notes else "",
            )
            if line
        )
        fields = {
            "Subject": f"New Bid - {listing_name} - {company}",
            "Status": "Not Started",
            "Priority": "High" if proximity > HIGH_PRIORITY_PROXIMITY else "Normal",
            "What_Id": listing.external_id if listing else None,
            "Who_Id": buyer.external_id if buyer else None,
            "Description": description,
            "Bid_Amount": offer.price_per_unit,
            "Bid_Quantity": offer.quantity,
            "Bid_Status": "Pending",
            "Proximity_Score": proximity,
        }

        try:
            external_task_id = await self.crm.create_record(CrmModule.WORK_ITEMS.value, fields)
        except Exception as e:
            logger.error(f"No se pudo crear el Task del CRM para la oferta {offer_id}: {e}")
            return None

        if external_task_id:
            offer.external_task_id = external_task_id
        offer.proximity_score = proximity
        await self.db.commit()
        return external_task_id

    async def update_offer_work_item_status(self, offer_id: str, action: str) -> bool:
        """Acepta o rechaza una oferta y refleja el resultado en su Task."""
        if action not in OFFER_ACTIONS:
            raise ValidationException(f"Accion invalida: {action}", field="action")

        offer = await self.offer_repo.get_by_id(offer_id)
        if not offer:
            raise EntityNotFoundException("Offer", offer_id)

        status, bid_status = OFFER_ACTIONS[action]
        external_task_id = offer.external_task_id
        if offer.status != status.value:
            offer.status = status.value
            await self.db.commit()

        return await self._push(
            CrmModule.WORK_ITEMS,
            external_task_id,
            {"Status": "Completed", "Bid_Status": bid_status},
        )

    async def create_deal(self, transaction_id: str) -> Optional[str]:
        """
        Crea un Deal "Closed Won" para una transaccion.
        Deshabilitado (CRM_DEALS_ENABLED=false) retorna None sin error.
        """
        if not settings.CRM_DEALS_ENABLED:
            return None

        transaction = await self.offer_repo.get_transaction(transaction_id)
        if not transaction:
            raise EntityNotFoundException("Transaction", transaction_id)
        listing = await self.listing_repo.get_by_id(transaction.listing_id)
        buyer = await self.actor_repo.get_by_id(transaction.buyer_id)

        listing_name = listing.name if listing else "Unknown"
        company = (buyer.company_name if buyer else None) or "Buyer"
        fields = {
            "Deal_Name": f"{listing_name} - {company}",
            "Stage": "Closed Won",
            "Amount": transaction.total_value,
            "Contact_Name": buyer.external_id if buyer else None,
            "Description": "\n".join([
                f"Product: {listing_name}",
                f"Quantity: {transaction.quantity}g",
                f"Total Value: ${transaction.total_value}",
            ]),
        }

        try:
            deal_id = await self.crm.create_record(CrmModule.DEALS.value, fields)
        except Exception as e:
            logger.error(f"No se pudo crear el Deal para la transaccion {transaction_id}: {e}")
            return None

        if deal_id:
            transaction.external_deal_id = deal_id
            await self.db.commit()
        return deal_id

    async def update_deal_stage(self, transaction_id: str, stage: str) -> Optional[bool]:
        """Mueve el Deal de una transaccion a Closed Won / Closed Lost."""
        if not settings.CRM_DEALS_ENABLED:
            return None
        if stage not in DEAL_STAGES:
            raise ValidationException(f"Etapa invalida: {stage}", field="stage")

        transaction = await self.offer_repo.get_transaction(transaction_id)
        if not transaction:
            raise EntityNotFoundException("Transaction", transaction_id)
        return await self._push(CrmModule.DEALS, transaction.external_deal_id, {"Stage": stage})
