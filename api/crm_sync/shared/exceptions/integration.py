"""
Excepciones de integracion con sistemas externos.
"""
from typing import Optional

from crm_sync.shared.exceptions.base import AppException


class CrmIntegrationException(AppException):
    """El CRM respondio con error o no respondio a tiempo."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="CRM_ERROR",
            details={"upstream_status": upstream_status} if upstream_status else None
        )
