# helpers/facebook_graph.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlencode

import aiohttp
from fastapi import Request

from helpers.settings import Settings

log = logging.getLogger("graph")

MESSENGER_SCOPES = ",".join(
    [
        "pages_messaging",
        "pages_manage_metadata",
        "business_management",
        "pages_show_list",
    ]
)

WEBHOOK_FIELDS = (
    "messages",
    "messaging_postbacks",
    "messaging_handovers",
    "messaging_optins",
    "standby",
)


def _normalize_version(version: Optional[str]) -> str:
    v = (version or "v24.0").strip()
    if not v.startswith("v"):
        v = f"v{v}"
    return v


class FacebookGraphError(Exception):
    """Non-2xx answer, a Graph `error` body, or a transport failure."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload


class FacebookGraph:
    """
    Lightweight async client for the Graph API pieces the Messenger
    connection needs.

    Usage:
        graph = FacebookGraph.from_settings(settings)
        token = await graph.exchange_code_for_user_token(code, settings.messenger_callback_url)
        pages = await graph.get_user_pages(token["access_token"])
    """

    def __init__(self, app_id: str, app_secret: str, version: Optional[str] = None, timeout: float = 15.0):
        self.app_id = app_id
        self.app_secret = app_secret
        self.version = _normalize_version(version)
        self.GRAPH = f"https://graph.facebook.com/{self.version}"
        self.DIALOG = f"https://www.facebook.com/{self.version}/dialog/oauth"
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FacebookGraph":
        return cls(
            app_id=settings.facebook_app_id,
            app_secret=settings.facebook_app_secret,
            version=settings.graph_version,
            timeout=settings.http_timeout,
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.GRAPH}/{path.lstrip('/')}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as s:
                async with s.request(method, url, params=params, data=data) as r:
                    try:
                        body = await r.json(content_type=None)
                    except ValueError:
                        body = {"raw": await r.text()}
                    status = r.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FacebookGraphError(f"{method} {path} failed: {e}") from e

        if status >= 400 or (isinstance(body, dict) and body.get("error")):
            err = body.get("error") if isinstance(body, dict) else None
            msg = (err or {}).get("message") if isinstance(err, dict) else None
            log.warning("graph %s %s -> HTTP %s: %s", method, path, status, msg)
            raise FacebookGraphError(
                f"{method} {path} -> HTTP {status}: {msg or 'Graph API error'}",
                status=status,
                payload=body,
            )
        return body if isinstance(body, dict) else {"data": body}

    # ---------- OAUTH ----------
    def authorization_url(self, redirect_uri: str, state: str) -> str:
        """
        Login dialog URL. `redirect_uri` must match the app settings exactly.
        """
        params = {
            "client_id": self.app_id,
            "redirect_uri": redirect_uri,
            "scope": MESSENGER_SCOPES,
            "state": state,
            "response_type": "code",
        }
        return f"{self.DIALOG}?{urlencode(params)}"

    async def exchange_code_for_user_token(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        """
        Exchange OAuth 'code' -> short-lived user token.
        """
        return await self._request(
            "GET",
            "oauth/access_token",
            params={
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )

    async def exchange_for_long_lived_token(self, short_lived_token: str) -> Dict[str, Any]:
        """
        Convert short-lived token -> long-lived (~60 days).
        """
        return await self._request(
            "GET",
            "oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "fb_exchange_token": short_lived_token,
            },
        )

    async def get_user_pages(self, user_token: str) -> List[Dict[str, Any]]:
        """
        Returns pages (and page access tokens) the user manages.
        """
        res = await self._request("GET", "me/accounts", params={"access_token": user_token})
        pages = res.get("data") or []
        return [p for p in pages if isinstance(p, dict)]

    # ---------- PAGE OPS ----------
    async def get_page_name(self, page_id: str, page_token: str) -> Optional[str]:
        res = await self._request("GET", page_id, params={"fields": "name", "access_token": page_token})
        return res.get("name") or None

    async def subscribe_app_to_page(
        self,
        page_id: str,
        page_token: str,
        fields: Iterable[str] = WEBHOOK_FIELDS,
    ) -> Dict[str, Any]:
        """
        Subscribe the app to the page's Messenger webhook events.
        Requires the Webhooks (Page) product enabled on the app.
        """
        return await self._request(
            "POST",
            f"{page_id}/subscribed_apps",
            data={"subscribed_fields": ",".join(fields), "access_token": page_token},
        )

    async def unsubscribe_app_from_page(self, page_id: str, page_token: str) -> Dict[str, Any]:
        return await self._request(
            "DELETE",
            f"{page_id}/subscribed_apps",
            params={"access_token": page_token},
        )


def get_graph(request: Request) -> FacebookGraph:
    return request.app.state.graph
