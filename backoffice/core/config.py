from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "Backoffice Access Gateway"
    debug: bool = False

    # CORS
    cors_origins: str = "http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # Backend (issues sessions and role data)
    backend_origin: str = "http://127.0.0.1:8080"
    backend_timeout: float = 10.0

    # Routing
    login_path: str = "/login"
    timezone: str = "Europe/Madrid"  # used for the default ?date= of reservas
    theme_cookie: str = "bo_theme"

    # Session expiration
    session_expiration_header: str = "X-Session-Expires-At"
    session_expiry_grace_ms: int = 150

    # Access control
    members_gate_fail_open: bool = True  # unknown importance passes the miembros floor
    role_catalog_path: Optional[str] = None
    load_remote_role_catalog: bool = False

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    file_logging: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BO_",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
