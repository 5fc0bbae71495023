# helpers/credits_backend.py
"""
Client for the credits backend (the Cloudflare worker that enforces per-site
credits and stores usage logs). Every call returns a CreditsResult instead of
raising; callers decide whether a failure matters.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from fastapi import Request

from helpers.settings import Settings

log = logging.getLogger("credits")

NOT_CONFIGURED = "Credits backend configuration not set"
NETWORK_ERROR = "Network error: Unable to reach credits backend"


@dataclass
class CreditsResult:
    success: bool
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class CreditsBackend:
    def __init__(
        self,
        base_url: str,
        admin_token: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.admin_token = admin_token or ""
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "CreditsBackend":
        return cls(settings.credits_backend_url, settings.admin_token, timeout=settings.http_timeout)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.admin_token)

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        failure_message: str = "Credits backend request failed",
    ) -> CreditsResult:
        if not self.configured:
            log.warning("credits backend not configured, skipping %s %s", method, path)
            return CreditsResult(success=False, message=NOT_CONFIGURED)

        headers = {"X-Admin-Token": self.admin_token}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.request(method, f"{self.base_url}{path}", json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            log.error("credits backend %s %s failed: %s", method, path, e)
            return CreditsResult(success=False, message=NETWORK_ERROR)

        try:
            data = r.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if r.status_code >= 400:
            log.warning("credits backend %s %s -> HTTP %s", method, path, r.status_code)
            return CreditsResult(success=False, message=data.get("message") or failure_message, data=data)
        return CreditsResult(success=True, message=data.get("message"), data=data)

    # ---------- credits ----------
    async def sync_credits(self, domain: str, credits_total: int, credits_remaining: int, plan: str) -> CreditsResult:
        res = await self._call(
            "POST",
            "/admin/set-credits",
            json={
                "site": domain,
                "credits_total": credits_total,
                "credits_remaining": credits_remaining,
                "plan": plan,
                "reason": "admin_panel_update",
            },
            failure_message="Failed to sync credits",
        )
        if res.success:
            res.message = "Credits synced successfully"
        return res

    async def get_usage_logs(self, domain: str, page: int = 1, per_page: int = 50) -> CreditsResult:
        return await self._call(
            "GET",
            "/admin/usage-logs",
            params={"site": domain, "page": page, "per_page": per_page},
            failure_message="Failed to fetch usage logs",
        )

    # ---------- messenger caches ----------
    async def update_page_cache(self, page_id: str, domain: str) -> CreditsResult:
        """page_id -> domain lookup used by the webhook router."""
        return await self._call("POST", "/admin/update-page-cache", json={"pageId": page_id, "domain": domain})

    async def invalidate_page_cache(self, page_id: str) -> CreditsResult:
        return await self._call("POST", "/admin/invalidate-page-cache", json={"pageId": page_id})

    async def force_refresh(self, domain: str) -> CreditsResult:
        """Reload the site's cached record (credits + Messenger credentials) from the database."""
        return await self._call("POST", "/admin/sync-credits", json={"domain": domain})


def get_credits_backend(request: Request) -> CreditsBackend:
    return request.app.state.credits_backend
