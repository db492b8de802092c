"""
Modelos de base de datos (ORM).

Tablas propias del sync:
- sync_checkpoints: bitacora append-only de corridas

Tablas del marketplace que el sync lee/escribe:
- actors, listings, offers, transactions, watchlist_items, notifications
"""
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from crm_sync.infrastructure.database.session import Base
from crm_sync.shared.constants.sync_constants import OfferStatus


def _new_id() -> str:
    return str(uuid.uuid4())


class ActorModel(Base):
    """
    Modelo de base de datos para actores (compradores/vendedores).

    external_id enlaza con el Contact del CRM; es nulo hasta que el
    actor queda vinculado durante el onboarding.
    """

    __tablename__ = "actors"

    id = Column(String(36), primary_key=True, default=_new_id)
    external_id = Column(String(64), nullable=True, unique=True, index=True)
    # UID de la cuenta del marketplace; el CRM lo guarda en Contacts.User_UID
    auth_uid = Column(String(128), nullable=True, unique=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    title = Column(String(255), nullable=True)
    contact_type = Column(String(100), nullable=True)
    approved = Column(Boolean, nullable=False, default=False)
    mailing_country = Column(String(100), nullable=True)
    phone = Column(String(100), nullable=True)
    notification_prefs = Column(JSON, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Actor(id={self.id}, external_id={self.external_id}, email={self.email})>"


class ListingModel(Base):
    """
    Modelo de base de datos para listings del marketplace.

    external_id es la llave de idempotencia de todos los upserts desde el CRM.
    marketplace_visible solo lo escribe el sync en modo coupled.
    """

    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=_new_id)
    external_id = Column(String(64), nullable=True, unique=True, index=True)
    seller_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    product_code = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String(255), nullable=True)
    type = Column(String(255), nullable=True)
    certification = Column(String(255), nullable=True)
    licensed_producer = Column(String(255), nullable=True)
    lineage = Column(String(255), nullable=True)
    growth_medium = Column(String(255), nullable=True)
    dominant_terpene = Column(String(255), nullable=True)
    highest_terpenes = Column(String(255), nullable=True)
    aromas = Column(String(255), nullable=True)
    harvest_date = Column(Date, nullable=True)

    is_active = Column(Boolean, nullable=False, default=False, index=True)
    request_pending = Column(Boolean, nullable=False, default=False)
    marketplace_visible = Column(Boolean, nullable=False, default=False, index=True)

    price_per_unit = Column(Float, nullable=True)
    min_qty_request = Column(Float, nullable=True)
    grams_available = Column(Float, nullable=True)
    upcoming_qty = Column(Float, nullable=True)
    thc_min = Column(Float, nullable=True)
    thc_max = Column(Float, nullable=True)
    cbd_min = Column(Float, nullable=True)
    cbd_max = Column(Float, nullable=True)
    bud_size_popcorn = Column(Float, nullable=True)
    bud_size_small = Column(Float, nullable=True)
    bud_size_medium = Column(Float, nullable=True)
    bud_size_large = Column(Float, nullable=True)
    bud_size_xlarge = Column(Float, nullable=True)

    image_urls = Column(JSON, nullable=False, default=list)
    coa_urls = Column(JSON, nullable=False, default=list)

    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Listing(id={self.id}, external_id={self.external_id}, name={self.name})>"


class OfferModel(Base):
    """
    Modelo de base de datos para ofertas (bids) sobre un listing.

    Una oferta PENDING es un "interes pendiente": su comprador recibe
    notificaciones de cambio de precio del listing.
    """

    __tablename__ = "offers"

    id = Column(String(36), primary_key=True, default=_new_id)
    external_task_id = Column(String(64), nullable=True, unique=True, index=True)
    listing_id = Column(String(36), ForeignKey("listings.id"), nullable=False, index=True)
    buyer_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)
    price_per_unit = Column(Float, nullable=False)
    quantity = Column(Float, nullable=False)
    total_value = Column(Float, nullable=False)
    proximity_score = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default=OfferStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Offer(id={self.id}, listing_id={self.listing_id}, status={self.status})>"


class TransactionModel(Base):
    """Modelo de base de datos para transacciones cerradas entre actores."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_new_id)
    buyer_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)
    seller_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)
    listing_id = Column(String(36), ForeignKey("listings.id"), nullable=False, index=True)
    offer_id = Column(String(36), ForeignKey("offers.id"), nullable=True)
    quantity = Column(Float, nullable=False)
    price_per_unit = Column(Float, nullable=False)
    total_value = Column(Float, nullable=False)
    status = Column(String(50), nullable=False, default="pending")
    external_deal_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Transaction(id={self.id}, listing_id={self.listing_id}, status={self.status})>"


class WatchlistItemModel(Base):
    """Interes expresado por un comprador sobre un listing concreto."""

    __tablename__ = "watchlist_items"
    __table_args__ = (UniqueConstraint("buyer_id", "listing_id", name="uq_watchlist_buyer_listing"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    buyer_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)
    listing_id = Column(String(36), ForeignKey("listings.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class NotificationModel(Base):
    """Notificacion in-app persistida para un actor."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"


class SyncCheckpointModel(Base):
    """
    Bitacora append-only de corridas de sync.

    Nunca se actualiza tras el insert. El ultimo registro de tipo full/delta
    con estado success/partial define el inicio de la ventana del proximo delta.
    """

    __tablename__ = "sync_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    record_count = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<SyncCheckpoint(id={self.id}, type={self.type}, status={self.status})>"
