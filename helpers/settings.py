# helpers/settings.py
from __future__ import annotations

import os
from typing import List, Optional

from fastapi import Request
from pydantic import BaseModel

MESSENGER_CALLBACK_PATH = "/api/messenger/connect/callback"


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    return (val or "").strip()


class Settings(BaseModel):
    """
    Process-wide configuration, built once at startup and handed to the
    controllers through `get_settings`.
    """

    facebook_app_id: str = ""
    facebook_app_secret: str = ""
    graph_version: str = "v24.0"
    admin_panel_url: str = ""

    credits_backend_url: str = ""
    admin_token: str = ""

    database_url: str = "sqlite://db.sqlite3"
    jwt_secret: str = "change-me"
    jwt_ttl_minutes: int = 720
    cors_origins: List[str] = ["*"]
    http_timeout: float = 15.0

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Reads:
          - FACEBOOK_APP_ID / FACEBOOK_APP_SECRET / FACEBOOK_GRAPH_VERSION
          - ADMIN_PANEL_URL (or NEXT_PUBLIC_ADMIN_PANEL_URL)
          - CLOUDFLARE_WORKER_URL / ADMIN_TOKEN
          - DATABASE_URL, JWT_SECRET, JWT_TTL_MINUTES, CORS_ORIGINS, HTTP_TIMEOUT
        """
        origins = [o.strip() for o in _get_env("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            facebook_app_id=_get_env("FACEBOOK_APP_ID"),
            facebook_app_secret=_get_env("FACEBOOK_APP_SECRET"),
            graph_version=_get_env("FACEBOOK_GRAPH_VERSION", "v24.0"),
            admin_panel_url=_get_env("ADMIN_PANEL_URL") or _get_env("NEXT_PUBLIC_ADMIN_PANEL_URL"),
            credits_backend_url=_get_env("CLOUDFLARE_WORKER_URL"),
            admin_token=_get_env("ADMIN_TOKEN"),
            database_url=_get_env("DATABASE_URL", "sqlite://db.sqlite3"),
            jwt_secret=_get_env("JWT_SECRET", "change-me"),
            jwt_ttl_minutes=int(_get_env("JWT_TTL_MINUTES", "720")),
            cors_origins=origins or ["*"],
            http_timeout=float(_get_env("HTTP_TIMEOUT", "15")),
        )

    @property
    def messenger_callback_url(self) -> str:
        # must match the redirect URI registered in the Facebook app settings
        return f"{self.admin_panel_url.rstrip('/')}{MESSENGER_CALLBACK_PATH}"

    @property
    def credits_backend_configured(self) -> bool:
        return bool(self.credits_backend_url and self.admin_token)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
