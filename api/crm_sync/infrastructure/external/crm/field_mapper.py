"""
Mapeo puro CRM -> columnas locales.

Reglas:
- Funciones totales: nunca lanzan, cualquier valor no interpretable se vuelve None.
- No hacen I/O. VISIBILITY_MODE se lee de settings una vez por llamada
  (o se recibe explicito).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from crm_sync.shared.constants.sync_constants import OfferStatus
from crm_sync.shared.utils.visibility import is_coupled_mode

DEFAULT_LISTING_NAME = "Unnamed Product"

IMAGE_FIELDS = ("Image_1", "Image_2", "Image_3", "Image_4")
COA_FIELDS = ("CoAs", "CoAs_2")

# columna local -> campo numerico del CRM
_NUMERIC_FIELDS = {
    "price_per_unit": "Min_Request_G_Including_5_markup",
    "min_qty_request": "Min_QTY_Request",
    "grams_available": "Grams_Available_When_submitted",
    "upcoming_qty": "Upcoming_QTY_3_Months",
    "thc_min": "THC_as_is",
    "thc_max": "THC_max",
    "cbd_min": "CBD_as_is",
    "cbd_max": "CBD_max",
    "bud_size_popcorn": "cm_Popcorn",
    "bud_size_small": "cm_Small",
    "bud_size_medium": "cm_Medium",
    "bud_size_large": "cm_Large",
    "bud_size_xlarge": "cm_X_Large",
}

# columna local -> campo de texto del CRM
_TEXT_FIELDS = {
    "product_code": "Product_Code",
    "description": "Description",
    "category": "Product_Category",
    "licensed_producer": "Manufacturer_name",
    "lineage": "Lineage",
    "growth_medium": "Growth_Medium",
    "dominant_terpene": "Terpen",
    "highest_terpenes": "Highest_Terpenes",
    "aromas": "Aromas",
}

# Allow-list de campos de Contacts que el sync puede escribir en un actor
_ACTOR_TEXT_FIELDS = {
    "contact_type": "Contact_Type",
    "first_name": "First_Name",
    "last_name": "Last_Name",
    "company_name": "Company",
    "title": "Title",
    "mailing_country": "Mailing_Country",
    "phone": "Phone",
}

# Estado remoto (minusculas) -> estado de oferta local
_OFFER_STATUS_MAP = {
    "pending": OfferStatus.PENDING,
    "not started": OfferStatus.PENDING,
    "under review": OfferStatus.UNDER_REVIEW,
    "in progress": OfferStatus.UNDER_REVIEW,
    "accepted": OfferStatus.ACCEPTED,
    "completed": OfferStatus.ACCEPTED,
    "rejected": OfferStatus.REJECTED,
    "deferred": OfferStatus.REJECTED,
    "countered": OfferStatus.COUNTERED,
    "expired": OfferStatus.EXPIRED,
}


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None


def to_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    if isinstance(value, (int, float)):
        return value != 0
    return default


def to_text(value: Any) -> Optional[str]:
    """Texto no vacio o None. Numeros se convierten a str."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        text = value.strip()
        return text or None
    return None


def _first_of_list(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)) and value:
        return to_text(value[0])
    return None


def _join_list(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        items = [text for text in (to_text(v) for v in value) if text]
        return ", ".join(items) if items else None
    return None


def map_listing_fields(remote: Mapping[str, Any], visibility_mode: Optional[str] = None) -> Dict[str, Any]:
    """
    Convierte un registro de Products en columnas de ListingModel.

    - Categories (multi-select): el primer valor va a `type`.
    - Certification (multi-select): se une con ", ".
    - En modo coupled, marketplace_visible refleja Product_Active.
      En modo decoupled la llave se omite para que el sync no la toque.
    """
    is_active = to_bool(remote.get("Product_Active"))

    values: Dict[str, Any] = {
        "name": to_text(remote.get("Product_Name")) or DEFAULT_LISTING_NAME,
        "type": _first_of_list(remote.get("Categories")),
        "certification": _join_list(remote.get("Certification")),
        "harvest_date": to_date(remote.get("Harvest_Date")),
        "is_active": is_active,
        "request_pending": to_bool(remote.get("Request_pending")),
    }
    for column, remote_field in _TEXT_FIELDS.items():
        values[column] = to_text(remote.get(remote_field))
    for column, remote_field in _NUMERIC_FIELDS.items():
        values[column] = to_float(remote.get(remote_field))

    if is_coupled_mode(visibility_mode):
        values["marketplace_visible"] = is_active

    return values


def merge_actor_fields(remote: Mapping[str, Any], current: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Calcula los cambios a aplicar sobre un actor existente.

    Solo campos del allow-list. Un valor remoto vacio nunca borra uno local.
    Retorna unicamente las columnas cuyo valor cambia.
    """
    changes: Dict[str, Any] = {}

    confirmed = remote.get("Account_Confirmed")
    if isinstance(confirmed, bool) and confirmed != current.get("approved"):
        changes["approved"] = confirmed

    for column, remote_field in _ACTOR_TEXT_FIELDS.items():
        value = to_text(remote.get(remote_field))
        if value is not None and value != current.get(column):
            changes[column] = value

    return changes


def _attachment_url(listing_external_id: str, value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value or None
    if isinstance(value, list):
        # Campos de archivo que llegan como lista de un elemento
        return _attachment_url(listing_external_id, value[0]) if value else None
    if isinstance(value, Mapping):
        if value.get("url"):
            return str(value["url"])
        if value.get("id"):
            return f"/Products/{listing_external_id}/files/{value['id']}"
    return None


def map_attachment_urls(listing_external_id: str, record: Optional[Mapping[str, Any]]) -> Dict[str, list]:
    """Extrae URLs de imagenes (Image_1..4) y CoA (CoAs, CoAs_2) de un registro."""
    if not record:
        return {"image_urls": [], "coa_urls": []}

    def collect(field_names) -> list:
        urls = []
        for name in field_names:
            url = _attachment_url(listing_external_id, record.get(name))
            if url:
                urls.append(url)
        return urls

    return {"image_urls": collect(IMAGE_FIELDS), "coa_urls": collect(COA_FIELDS)}


def map_offer_status(raw_status: Any) -> Optional[OfferStatus]:
    """Traduce el estado remoto de un Task (case-insensitive). Desconocido -> None."""
    text = to_text(raw_status)
    if text is None:
        return None
    return _OFFER_STATUS_MAP.get(text.lower())
