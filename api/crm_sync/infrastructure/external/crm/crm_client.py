"""
Cliente minimo de la API REST del CRM (httpx async).

Requisitos cubiertos:
- OAuth con refresh token (access token cacheado con 60s de margen)
- timeout propio por llamada; un timeout es un error remoto mas, sin reintentos
- paginacion por page/per_page hasta info.more_records = false
- HTTP 204 ("sin registros") se trata como resultado vacio, nunca como error
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from crm_sync.core.config import settings
from crm_sync.shared.utils.datetime_utils import format_crm_datetime

from .field_mapper import COA_FIELDS, IMAGE_FIELDS, map_attachment_urls
from .types import ListingAttachments, RemoteActor, RemoteListing, RemotePayloadError, RemoteWorkItem

LISTING_FIELDS = ",".join([
    "Product_Name", "Product_Code", "Description", "Product_Category", "Categories",
    "Product_Active", "Request_pending", "Min_Request_G_Including_5_markup", "Min_QTY_Request",
    "Grams_Available_When_submitted", "Upcoming_QTY_3_Months", "THC_as_is", "THC_max",
    "CBD_as_is", "CBD_max", "Certification", "Harvest_Date", "Manufacturer_name", "Lineage",
    "Growth_Medium", "Terpen", "Highest_Terpenes", "Aromas",
    "cm_Popcorn", "cm_Small", "cm_Medium", "cm_Large", "cm_X_Large",
    "Contact_Name", "Modified_Time",
])

ACTOR_FIELDS = ",".join([
    "First_Name", "Last_Name", "Email", "Company", "Title", "Contact_Type",
    "Account_Confirmed", "Mailing_Country", "Phone", "User_UID",
])

# Margen antes de la expiracion real del access token
TOKEN_EXPIRY_BUFFER_S = 60


@dataclass(frozen=True)
class CrmCredentials:
    client_id: str
    client_secret: str
    refresh_token: str

    @classmethod
    def from_settings(cls) -> "CrmCredentials":
        return cls(
            client_id=settings.CRM_CLIENT_ID,
            client_secret=settings.CRM_CLIENT_SECRET,
            refresh_token=settings.CRM_REFRESH_TOKEN,
        )


class CrmApiError(RuntimeError):
    """Error de integracion con el CRM (HTTP no exitoso, timeout, red)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def build_modified_since_criteria(since: datetime) -> str:
    """Criterio de busqueda para registros modificados despues de `since`."""
    return f"(Modified_Time:greater_than:{format_crm_datetime(since)})"


def _records(payload: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not payload:
        return []
    return payload.get("data") or []


def _more_records(payload: Optional[Dict[str, Any]]) -> bool:
    if not payload:
        return False
    return bool((payload.get("info") or {}).get("more_records"))


def _to_typed(records: List[Dict[str, Any]], factory) -> list:
    """Convierte registros crudos; los que no tienen id se descartan con warning."""
    typed = []
    for record in records:
        try:
            typed.append(factory(record))
        except RemotePayloadError as e:
            logger.warning(f"Registro del CRM descartado: {e}")
    return typed


class CrmClient:
    """
    Cliente HTTP del CRM.

    Importante:
    - No castea tipos de campos: eso lo decide el field mapper.
    - Reutiliza un httpx.AsyncClient; cerrarlo con `aclose()`.
    """

    def __init__(
        self,
        credentials: Optional[CrmCredentials] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        accounts_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        page_size: Optional[int] = None,
    ) -> None:
        self._creds = credentials or CrmCredentials.from_settings()
        self._api_url = (api_url or settings.CRM_API_URL).rstrip("/")
        self._accounts_url = (accounts_url or settings.CRM_ACCOUNTS_URL).rstrip("/")
        self._timeout_s = timeout_s if timeout_s is not None else settings.CRM_HTTP_TIMEOUT_S
        self._page_size = page_size or settings.CRM_PAGE_SIZE
        self._http = http_client or httpx.AsyncClient()
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0
        self._token_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Autenticacion
    # ------------------------------------------------------------------

    async def _get_access_token(self) -> str:
        async with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expiry:
                return self._access_token

            try:
                response = await self._http.post(
                    f"{self._accounts_url}/oauth/v2/token",
                    params={
                        "grant_type": "refresh_token",
                        "client_id": self._creds.client_id,
                        "client_secret": self._creds.client_secret,
                        "refresh_token": self._creds.refresh_token,
                    },
                    timeout=self._timeout_s,
                )
            except httpx.HTTPError as e:
                raise CrmApiError(f"No se pudo refrescar el token del CRM: {e}") from e

            if response.status_code >= 400:
                raise CrmApiError(
                    f"Refresh de token fallo {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            payload = response.json()
            token = payload.get("access_token")
            if not token:
                raise CrmApiError(f"Respuesta de token sin access_token: {payload.get('error')}")

            expires_in = float(payload.get("expires_in") or 3600)
            self._access_token = token
            self._token_expiry = time.monotonic() + expires_in - TOKEN_EXPIRY_BUFFER_S
            logger.info("Access token del CRM refrescado")
            return token

    # ------------------------------------------------------------------
    # Transporte
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Ejecuta una llamada a la API.

        Returns:
            JSON de respuesta, o None si el CRM respondio 204 (sin registros)

        Raises:
            CrmApiError: respuesta >= 400, timeout o error de red
        """
        token = await self._get_access_token()
        request_headers = {"Authorization": f"Zoho-oauthtoken {token}"}
        if headers:
            request_headers.update(headers)

        url = f"{self._api_url}{endpoint}"
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers=request_headers,
                timeout=self._timeout_s,
            )
        except httpx.TimeoutException as e:
            raise CrmApiError(f"Timeout en {method} {endpoint} tras {self._timeout_s}s") from e
        except httpx.HTTPError as e:
            raise CrmApiError(f"Error de red en {method} {endpoint}: {e}") from e

        if response.status_code == 204:
            return None
        if response.status_code >= 400:
            raise CrmApiError(
                f"CRM {method} {endpoint} fallo {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    async def _paginate(
        self,
        endpoint: str,
        params: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        """Recorre todas las paginas secuencialmente."""
        records: List[Dict[str, Any]] = []
        page = 1
        while True:
            payload = await self.request(
                "GET",
                endpoint,
                params={**params, "page": page, "per_page": self._page_size},
                headers=headers,
            )
            records.extend(_records(payload))
            if not _more_records(payload):
                break
            page += 1
        return records

    # ------------------------------------------------------------------
    # Listings (Products)
    # ------------------------------------------------------------------

    async def fetch_all_listings(self) -> List[RemoteListing]:
        records = await self._paginate("/Products", {"fields": LISTING_FIELDS})
        return _to_typed(records, RemoteListing.from_payload)

    async def fetch_listings_modified_since(self, since: datetime) -> List[RemoteListing]:
        records = await self._paginate(
            "/Products/search",
            {"criteria": build_modified_since_criteria(since), "fields": LISTING_FIELDS},
        )
        return _to_typed(records, RemoteListing.from_payload)

    async def fetch_deleted_listing_ids(self, since: datetime) -> List[str]:
        """IDs de Products borrados en el CRM desde `since`."""
        records = await self._paginate(
            "/Products/deleted",
            {"type": "all"},
            headers={"If-Modified-Since": format_crm_datetime(since)},
        )
        return [str(r["id"]) for r in records if r.get("id")]

    async def fetch_listing(self, external_id: str) -> Optional[RemoteListing]:
        """Un Product por id. None si el CRM no lo tiene."""
        records = _records(await self.request("GET", f"/Products/{external_id}"))
        if not records:
            return None
        return RemoteListing.from_payload(records[0])

    async def fetch_listing_attachments(self, external_id: str) -> ListingAttachments:
        payload = await self.request(
            "GET",
            f"/Products/{external_id}",
            params={"fields": ",".join(IMAGE_FIELDS + COA_FIELDS)},
        )
        records = _records(payload)
        urls = map_attachment_urls(external_id, records[0] if records else None)
        return ListingAttachments(image_urls=urls["image_urls"], coa_urls=urls["coa_urls"])

    # ------------------------------------------------------------------
    # Actores (Contacts)
    # ------------------------------------------------------------------

    async def fetch_marketplace_actors(self) -> List[RemoteActor]:
        """Contacts vinculados a una cuenta del marketplace (User_UID no vacio)."""
        records = await self._paginate(
            "/Contacts/search",
            {"criteria": "(User_UID:is_not_empty:true)", "fields": ACTOR_FIELDS},
        )
        return _to_typed(records, RemoteActor.from_payload)

    async def fetch_actor(self, external_id: str) -> Optional[RemoteActor]:
        records = _records(await self.request("GET", f"/Contacts/{external_id}"))
        if not records:
            return None
        return RemoteActor.from_payload(records[0])

    # ------------------------------------------------------------------
    # Work items (Tasks)
    # ------------------------------------------------------------------

    async def fetch_work_item(self, external_id: str) -> Optional[RemoteWorkItem]:
        records = _records(await self.request("GET", f"/Tasks/{external_id}"))
        if not records:
            return None
        return RemoteWorkItem.from_payload(records[0])

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    async def update_record(self, module: str, external_id: str, fields: Dict[str, Any]) -> None:
        """PUT parcial de un registro. Solo se envian los campos dados."""
        await self.request(
            "PUT",
            f"/{module}/{external_id}",
            json={"data": [fields], "trigger": []},
        )

    async def create_record(self, module: str, fields: Dict[str, Any]) -> Optional[str]:
        """Crea un registro y retorna su id (data[0].details.id)."""
        payload = await self.request(
            "POST",
            f"/{module}",
            json={"data": [fields], "trigger": []},
        )
        records = _records(payload)
        if not records:
            return None
        record_id = (records[0].get("details") or {}).get("id")
        return str(record_id) if record_id else None
