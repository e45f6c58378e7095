from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = False

    # JWT
    secret_key: str
    access_token_expire_minutes: int = 60 * 24 * 7
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Public base URL, used to build avatar URLs
    app_url: str = "http://localhost:3333"

    # Appointment business rules
    appointments_page_size: int = 20
    cancellation_cutoff_hours: int = 2
    default_locale: str = "pt-BR"

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def file_url(self, path: str) -> str:
        return f"{self.app_url.rstrip('/')}/files/{path}"


settings = Settings()
