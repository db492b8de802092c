"""
DTOs del pipeline de sync y del webhook del CRM.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SyncRunResultDTO(BaseModel):
    """Resumen de una corrida de sync (listings o actores)."""

    type: str = Field(..., description="Tipo de checkpoint: full, delta, actors")
    status: str = Field(..., description="success, partial o error")
    mode: Optional[str] = Field(None, description="full, delta o full-fallback")
    synced: int = Field(0, description="Registros escritos")
    skipped: int = Field(0, description="Registros omitidos (vendedor sin vincular)")
    errors: int = Field(0, description="Registros con error")
    total: int = Field(0, description="Registros remotos procesados")
    removed: int = Field(0, description="Listings borrados (sin dependientes)")
    deactivated: int = Field(0, description="Listings desactivados")
    since: Optional[str] = Field(None, description="Inicio de la ventana del delta")
    error: Optional[str] = Field(None, description="Mensaje si la corrida fallo")

    def to_details(self) -> Dict[str, Any]:
        """Detalles a guardar en el checkpoint."""
        if self.status == "error":
            return {"error": self.error}
        details: Dict[str, Any] = {
            "synced": self.synced,
            "skipped": self.skipped,
            "errors": self.errors,
            "total": self.total,
        }
        if self.type != "actors":
            details["deactivated"] = self.deactivated
        if self.mode:
            details["mode"] = self.mode
        if self.type == "delta":
            details.update({"removed": self.removed, "since": self.since})
        return details


class CrmSyncJobResultDTO(BaseModel):
    """Resultado del job programado (listings + actores)."""

    listings: Optional[SyncRunResultDTO] = None
    actors: Optional[SyncRunResultDTO] = None


class CheckpointDTO(BaseModel):
    id: int
    type: str
    status: str
    record_count: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WebhookPayloadDTO(BaseModel):
    """
    Cuerpo del webhook del CRM.

    module y record_id son obligatorios para procesar, pero se validan en el
    caso de uso para responder 400 con el detalle de lo faltante.
    """

    module: Optional[str] = None
    record_id: Optional[str] = None
    action: Optional[str] = None

    @field_validator("module", "record_id", "action", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class WebhookResultDTO(BaseModel):
    """Respuesta del webhook."""

    status: str = Field(..., description="processed, ignored o skipped")
    module: Optional[str] = None
    record_id: Optional[str] = None
    detail: Optional[str] = None
