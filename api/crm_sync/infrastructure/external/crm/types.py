"""
Tipos de payload remoto del CRM.

Cada registro que entra por el cliente se convierte en un dataclass
inmutable con una etiqueta `kind`. Los campos del CRM se conservan crudos
en `fields`: el casteo de tipos es responsabilidad del field mapper.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Optional


class RemotePayloadError(ValueError):
    """Registro remoto que no cumple la forma minima (p.ej. sin 'id')."""


def _lookup_id(value: Any) -> Optional[str]:
    """Extrae el id de un campo lookup del CRM ({"id": ..., "name": ...})."""
    if isinstance(value, Mapping):
        raw = value.get("id")
        return str(raw) if raw else None
    if isinstance(value, (str, int)) and value:
        return str(value)
    return None


def _record_id(payload: Mapping[str, Any], kind: str) -> str:
    if not isinstance(payload, Mapping):
        raise RemotePayloadError(f"Registro {kind} con forma invalida: {type(payload).__name__}")
    record_id = payload.get("id")
    if not record_id:
        raise RemotePayloadError(f"El CRM devolvio un registro {kind} sin 'id'")
    return str(record_id)


@dataclass(frozen=True)
class RemoteListing:
    """Registro del modulo Products."""

    external_id: str
    fields: Mapping[str, Any]
    seller_external_id: Optional[str] = None
    kind: Literal["listing"] = "listing"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteListing":
        external_id = _record_id(payload, "listing")
        return cls(
            external_id=external_id,
            fields=dict(payload),
            seller_external_id=_lookup_id(payload.get("Contact_Name")),
        )

    @property
    def name(self) -> Optional[str]:
        return self.fields.get("Product_Name")


@dataclass(frozen=True)
class RemoteActor:
    """Registro del modulo Contacts."""

    external_id: str
    fields: Mapping[str, Any]
    auth_uid: Optional[str] = None
    kind: Literal["actor"] = "actor"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteActor":
        external_id = _record_id(payload, "actor")
        return cls(
            external_id=external_id,
            fields=dict(payload),
            auth_uid=payload.get("User_UID") or None,
        )


@dataclass(frozen=True)
class RemoteWorkItem:
    """Registro del modulo Tasks (work item asociado a una oferta)."""

    external_id: str
    fields: Mapping[str, Any]
    kind: Literal["work_item"] = "work_item"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteWorkItem":
        return cls(external_id=_record_id(payload, "work_item"), fields=dict(payload))

    @property
    def raw_status(self) -> Optional[str]:
        """Bid_Status tiene prioridad sobre Status."""
        return self.fields.get("Bid_Status") or self.fields.get("Status")


@dataclass(frozen=True)
class ListingAttachments:
    """URLs de imagenes y certificados (CoA) de un listing."""

    image_urls: list[str] = field(default_factory=list)
    coa_urls: list[str] = field(default_factory=list)
