from __future__ import annotations

import secrets

from fastapi import Request
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Core
    app_name: str = "BoxCheckr"
    environment: str = "production"
    base_url: str = "http://localhost:8080"
    log_level: str = "INFO"

    # Sessions (signed cookie). A random secret logs everyone out on restart.
    session_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    session_max_age_seconds: int = 7 * 24 * 3600

    # DB
    database_url: str = "sqlite+aiosqlite:///./boxcheckr.db"
    auto_create_schema: bool = True

    # Identity provider (Azure AD by default)
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None
    azure_admin_role: str = "InventoryAdmin"
    oidc_issuer: str | None = None
    http_timeout_seconds: float = 10.0

    @property
    def resolved_issuer(self) -> str | None:
        if self.oidc_issuer:
            return self.oidc_issuer.rstrip("/")
        if self.azure_tenant_id:
            return f"https://login.microsoftonline.com/{self.azure_tenant_id}/v2.0"
        return None

    @property
    def secure_cookies(self) -> bool:
        return self.base_url.startswith("https://")

    @property
    def public_url(self) -> str:
        return self.base_url.rstrip("/")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
