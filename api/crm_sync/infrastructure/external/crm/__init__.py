from .crm_client import CrmApiError, CrmClient, CrmCredentials
from .types import ListingAttachments, RemoteActor, RemoteListing, RemotePayloadError, RemoteWorkItem

__all__ = [
    "CrmApiError",
    "CrmClient",
    "CrmCredentials",
    "ListingAttachments",
    "RemoteActor",
    "RemoteListing",
    "RemotePayloadError",
    "RemoteWorkItem",
]
