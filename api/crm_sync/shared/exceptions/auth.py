"""
Excepciones relacionadas con autenticación de peticiones entrantes.
"""
from crm_sync.shared.exceptions.base import AppException


class AuthException(AppException):
    """Excepción base para errores de autenticación."""

    def __init__(self, message: str, error_code: str = "AUTH_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=401,
            error_code=error_code,
            details=details
        )


class UnauthorizedException(AuthException):
    """Excepción para acceso no autorizado."""

    def __init__(self, message: str = "No autorizado"):
        super().__init__(
            message=message,
            error_code="UNAUTHORIZED"
        )
