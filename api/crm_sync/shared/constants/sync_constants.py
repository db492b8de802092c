"""
Constantes del pipeline de sincronizacion con el CRM.
"""
from enum import Enum


class CheckpointType(str, Enum):
    """Tipos de corrida registrados en la bitacora de checkpoints."""
    FULL = "full"
    DELTA = "delta"
    ACTORS = "actors"


class CheckpointStatus(str, Enum):
    """Resultado de una corrida."""
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class SyncMode(str, Enum):
    """Estrategia efectivamente usada por una corrida de listings."""
    FULL = "full"
    DELTA = "delta"
    FULL_FALLBACK = "full-fallback"


class VisibilityMode(str, Enum):
    """Origen del flag de visibilidad en el marketplace."""
    COUPLED = "coupled"
    DECOUPLED = "decoupled"


class OfferStatus(str, Enum):
    """Estados de la maquina de estados de ofertas."""
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COUNTERED = "COUNTERED"
    EXPIRED = "EXPIRED"


class NotificationType(str, Enum):
    """Tipos de notificacion emitidos por el sync."""
    LISTING_NEW = "LISTING_NEW"
    LISTING_PRICE = "LISTING_PRICE"
    WATCHLIST_PRICE_DROP = "WATCHLIST_PRICE_DROP"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"


class CrmModule(str, Enum):
    """Modulos del CRM que llegan por webhook."""
    LISTINGS = "Products"
    ACTORS = "Contacts"
    WORK_ITEMS = "Tasks"
    DEALS = "Deals"


class LockIds:
    """
    IDs de advisory lock de PostgreSQL por job.
    Deben ser enteros unicos: jobs distintos nunca compiten por el mismo lock.
    """
    CRM_SYNC = 100001
    ACTOR_SYNC = 100002


# Tipos de checkpoint que definen la ventana del proximo delta
LISTING_CHECKPOINT_TYPES = (CheckpointType.FULL, CheckpointType.DELTA)
# Estados que cuentan como corrida valida para avanzar la ventana
NON_ERROR_STATUSES = (CheckpointStatus.SUCCESS, CheckpointStatus.PARTIAL)

# Preferencias por defecto; el usuario puede sobreescribirlas en notification_prefs
DEFAULT_NOTIFICATION_PREFS = {
    NotificationType.LISTING_NEW.value: True,
    NotificationType.LISTING_PRICE.value: True,
    NotificationType.WATCHLIST_PRICE_DROP.value: True,
    NotificationType.SYSTEM_ANNOUNCEMENT.value: True,
}
