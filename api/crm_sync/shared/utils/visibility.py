"""
Helper de visibilidad en el marketplace.

Centraliza la bifurcacion entre modo "coupled" (la visibilidad sigue al flag
activo del CRM) y modo "decoupled" (la visibilidad es un flag local propio).

VISIBILITY_MODE=coupled   (default) -> visible = is_active
VISIBILITY_MODE=decoupled (pruebas) -> visible = marketplace_visible, el CRM no se toca
"""
from typing import Any, Mapping, Optional

from crm_sync.core.config import settings
from crm_sync.shared.constants.sync_constants import VisibilityMode


def is_coupled_mode(mode: Optional[str] = None) -> bool:
    """
    Indica si el marketplace esta acoplado al flag activo del CRM.
    Cualquier valor distinto de 'decoupled' se trata como coupled.
    """
    value = (mode if mode is not None else settings.VISIBILITY_MODE) or ""
    return value.strip().lower() != VisibilityMode.DECOUPLED.value


def is_listing_visible(values: Mapping[str, Any], mode: Optional[str] = None) -> bool:
    """Determina si un listing (dict o fila) es visible en el marketplace."""
    if is_coupled_mode(mode):
        return bool(values.get("is_active"))
    return bool(values.get("marketplace_visible"))
