"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.
Soporta configuracion dinamica para desarrollo (ENVIRONMENT=development)
y produccion (ENVIRONMENT=production).
"""
import json
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    Grupos de configuracion:
    - Aplicacion/servidor: nombre, version, host, puerto
    - Base de datos: DATABASE_URL completa o por componentes
    - CRM: credenciales OAuth, URL de la API, timeout por llamada
    - Sync: expresion cron, modo de visibilidad, limites de notificacion
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Marketplace CRM Sync")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados (recomendado para flexibilidad)
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="marketplace_user")
    DATABASE_PASSWORD: str = Field(default="marketplace_pass")
    DATABASE_NAME: str = Field(default="marketplace_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # CRM (API REST + OAuth refresh token)
    CRM_API_URL: str = Field(default="https://www.zohoapis.ca/crm/v7")
    CRM_ACCOUNTS_URL: str = Field(default="https://accounts.zohocloud.ca")
    CRM_CLIENT_ID: str = Field(default="")
    CRM_CLIENT_SECRET: str = Field(default="")
    CRM_REFRESH_TOKEN: str = Field(default="")
    CRM_HTTP_TIMEOUT_S: float = Field(default=30.0)
    CRM_PAGE_SIZE: int = Field(default=200)
    # Si esta vacio, el webhook acepta peticiones sin secreto (con warning)
    CRM_WEBHOOK_SECRET: str = Field(default="")
    # Creacion de Deals en el CRM (deshabilitada por defecto)
    CRM_DEALS_ENABLED: bool = Field(default=False)

    # Sync
    SYNC_ENABLED: bool = Field(default=True)
    SYNC_CRON: str = Field(default="*/15 * * * *")
    # coupled: la visibilidad sigue al flag activo del CRM
    # decoupled: la visibilidad es un flag local que el sync no toca
    VISIBILITY_MODE: str = Field(default="coupled")
    NEW_LISTING_NOTIFY_LIMIT: int = Field(default=50)
    NOTIFICATION_QUEUE_SIZE: int = Field(default=1000)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    @computed_field
    @property
    def crm_configured(self) -> bool:
        """Indica si hay credenciales del CRM para habilitar el sync programado."""
        return bool(self.CRM_CLIENT_ID and self.CRM_CLIENT_SECRET and self.CRM_REFRESH_TOKEN)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",  # Ignorar campos extra del .env
    )


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuracion
settings = Settings()
