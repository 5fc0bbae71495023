# controllers/messenger_controller.py
"""
Facebook Page <-> Website connection for the Messenger bot.

Called by the WordPress plugin (not by console staff):
  1. /initiate  - plugin sends the admin's browser here with domain + license key
  2. /callback  - Facebook sends the browser back here with ?code&state
  3. /status    - plugin polls connection health / token expiry (CORS, JSON)
  4. /disconnect

initiate/callback talk to a browser in the middle of a redirect chain, so
their errors are redirects back to the plugin with ?error&message. JSON
errors are only used before a redirect target is known.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from tortoise.exceptions import IntegrityError

from helpers.credits_backend import CreditsBackend, CreditsResult, get_credits_backend
from helpers.facebook_graph import FacebookGraph, FacebookGraphError, get_graph
from helpers.oauth_state import OAuthState, StateCodec, StateDecodeError, get_state_codec
from helpers.settings import Settings, get_settings
from models.website import MESSENGER_FIELDS_CLEARED, MESSENGER_PLANS, Status, Website

log = logging.getLogger("messenger")

router = APIRouter(prefix="/messenger/connect", tags=["Messenger Connection"])
# mounted path; these routes send their own CORS headers
PLUGIN_API_PREFIX = "/api" + router.prefix

PLUGIN_SETTINGS_PATH = "/wp-admin/admin.php?page=ns-ai-search-messenger"
LONG_LIVED_TTL_SECONDS = 60 * 24 * 3600
SHORT_LIVED_TTL_SECONDS = 3600

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


class ConnectError(Exception):
    """A failure that is reported to the plugin as ?error=<code>&message=..."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# =========================
#  Helpers
# =========================
def _default_redirect(domain: Optional[str]) -> Optional[str]:
    if not domain:
        return None
    return f"https://{domain}{PLUGIN_SETTINGS_PATH}"


def _with_query(url: str, params: Dict[str, str]) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _redirect(url: str, **params: str) -> RedirectResponse:
    return RedirectResponse(_with_query(url, params), status_code=302)


def _redirect_error(target: str, code: str, message: str) -> RedirectResponse:
    return _redirect(target, error=code, message=message)


def _json_error(message: str, status_code: int, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code, headers=headers)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def _best_effort(label: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> None:
    """Run a side effect whose failure must never reach the caller."""
    try:
        res = await fn(*args)
    except Exception:
        log.exception("[messenger] %s failed", label)
        return
    if isinstance(res, CreditsResult) and not res.success:
        log.warning("[messenger] %s failed: %s", label, res.message)


def _target_for(decoded: Optional[OAuthState], fallback: Optional[str]) -> Optional[str]:
    """Redirect target: state `redirect_uri`, then the query fallback, then the plugin page for the state domain."""
    if decoded and decoded.redirect_uri:
        return decoded.redirect_uri
    return fallback or _default_redirect(decoded.domain if decoded else None)


def _decode_quietly(codec: StateCodec, state: Optional[str]) -> Optional[OAuthState]:
    if not state:
        return None
    try:
        return codec.decode(state)
    except StateDecodeError:
        return None


# ---------- 1. Initiate ----------
@router.get("/initiate")
async def initiate_connect(
    domain: Optional[str] = Query(None),
    license_key: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    graph: FacebookGraph = Depends(get_graph),
    codec: StateCodec = Depends(get_state_codec),
):
    """
    Validate the plugin's license and send the browser to the Facebook
    login dialog. `redirect_uri` is where the browser lands when we're done.
    """
    target = redirect_uri or _default_redirect(domain)
    if not target:
        return _json_error("Domain and license key are required", 400)

    try:
        if not domain or not license_key:
            raise ConnectError("missing_params", "Domain and license key are required")

        website = await Website.get_or_none(license_key=license_key)
        if not website or website.domain != domain:
            raise ConnectError("invalid_license", "Invalid license key or domain mismatch")

        if website.plan not in MESSENGER_PLANS:
            raise ConnectError(
                "plan_not_supported",
                "Messenger is only available for paid plans (BASIC, PRO, ENTERPRISE)",
            )

        if website.status != Status.ACTIVE:
            raise ConnectError("account_inactive", f"Account is {website.status.value.lower()}")

        if not settings.facebook_app_id:
            raise ConnectError("config_error", "Facebook app not configured")

        state = codec.encode(OAuthState(domain=domain, licenseKey=license_key, redirect_uri=target))
        log.info("[messenger] initiate domain=%s website=%s", domain, website.id)
        return RedirectResponse(
            graph.authorization_url(settings.messenger_callback_url, state),
            status_code=302,
        )
    except ConnectError as e:
        log.info("[messenger] initiate rejected domain=%s error=%s", domain, e.code)
        return _redirect_error(target, e.code, e.message)
    except Exception:
        log.exception("[messenger] initiate failed domain=%s", domain)
        return _redirect_error(target, "server_error", "An error occurred during authentication")


# ---------- 2. Callback ----------
async def _page_token_with_expiry(graph: FacebookGraph, page_token: str) -> Tuple[str, datetime]:
    """
    Swap the page token for a long-lived one (~60 days). Any failure keeps the
    original token with a short-lived (~1 hour) expiry instead of aborting.
    """
    now = datetime.now(timezone.utc)
    try:
        res = await graph.exchange_for_long_lived_token(page_token)
    except FacebookGraphError as e:
        log.warning("[messenger] long-lived token exchange failed, keeping short-lived token: %s", e)
        return page_token, now + timedelta(seconds=SHORT_LIVED_TTL_SECONDS)
    except Exception:
        log.exception("[messenger] long-lived token exchange errored, keeping short-lived token")
        return page_token, now + timedelta(seconds=SHORT_LIVED_TTL_SECONDS)

    long_token = res.get("access_token")
    if not long_token:
        log.warning("[messenger] long-lived token exchange returned no token, keeping short-lived token")
        return page_token, now + timedelta(seconds=SHORT_LIVED_TTL_SECONDS)

    try:
        expires_in = int(res.get("expires_in") or LONG_LIVED_TTL_SECONDS)
    except (TypeError, ValueError):
        expires_in = LONG_LIVED_TTL_SECONDS
    return long_token, now + timedelta(seconds=expires_in)


async def _connect_page(
    code: str,
    state: OAuthState,
    settings: Settings,
    graph: FacebookGraph,
    credits: CreditsBackend,
    bg: BackgroundTasks,
) -> Tuple[str, str]:
    """
    Code -> user token -> first managed Page -> Website binding.
    Returns (page_id, page_name); raises ConnectError on any rejected step.
    """
    try:
        token_data = await graph.exchange_code_for_user_token(code, settings.messenger_callback_url)
    except FacebookGraphError as e:
        log.error("[messenger] token exchange failed: %s", e)
        raise ConnectError("token_exchange_failed", "Failed to exchange authorization code for access token")

    user_token = token_data.get("access_token")
    if not user_token:
        raise ConnectError("no_access_token", "No access token received from Facebook")

    try:
        pages = await graph.get_user_pages(user_token)
    except FacebookGraphError as e:
        log.error("[messenger] pages fetch failed: %s", e)
        raise ConnectError("pages_fetch_failed", "Failed to fetch Facebook pages")

    if not pages:
        raise ConnectError("no_pages", "No Facebook pages found. Please create a page first.")

    # no page picker: the first managed page wins
    selected = pages[0]
    page_id = str(selected.get("id") or "")
    page_name = selected.get("name") or ""
    page_token = selected.get("access_token")
    if not page_id or not page_token:
        raise ConnectError("pages_fetch_failed", "Facebook did not return a usable page access token")

    # state is unsigned: re-check it against the database
    website = await Website.get_or_none(license_key=state.licenseKey)
    if not website or website.domain != state.domain:
        raise ConnectError("website_not_found", "Website not found")

    already = await Website.filter(facebook_page_id=page_id).exclude(id=website.id).exists()
    if already:
        raise ConnectError("page_already_connected", "This Facebook page is already connected to another website")

    page_token, expires_at = await _page_token_with_expiry(graph, page_token)

    # the unique index on facebook_page_id settles concurrent connects of the same page
    try:
        await Website.filter(id=website.id).update(
            messenger_enabled=True,
            facebook_page_id=page_id,
            facebook_page_name=page_name or None,
            facebook_page_access_token=page_token,
            token_expires_at=expires_at,
        )
    except IntegrityError:
        log.warning("[messenger] page %s bound concurrently to another website", page_id)
        raise ConnectError("page_already_connected", "This Facebook page is already connected to another website")

    log.info("[messenger] connected website=%s page=%s", website.id, page_id)

    await _best_effort("webhook subscription", graph.subscribe_app_to_page, page_id, page_token)

    bg.add_task(_best_effort, "page cache update", credits.update_page_cache, page_id, website.domain)
    bg.add_task(_best_effort, "cache refresh", credits.force_refresh, website.domain)
    bg.add_task(
        _best_effort,
        "credits sync",
        credits.sync_credits,
        website.domain,
        website.credits_total,
        website.credits_remaining,
        website.plan.value,
    )
    return page_id, page_name


@router.get("/callback")
async def oauth_callback(
    bg: BackgroundTasks,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    domain: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    graph: FacebookGraph = Depends(get_graph),
    credits: CreditsBackend = Depends(get_credits_backend),
    codec: StateCodec = Depends(get_state_codec),
):
    fallback = redirect_uri or _default_redirect(domain)
    decoded: Optional[OAuthState] = None
    target: Optional[str] = None
    try:
        if error:
            decoded = _decode_quietly(codec, state)
            target = _target_for(decoded, fallback)
            if not target:
                return _json_error("Facebook authorization failed and no redirect target is known", 500)
            message = "Facebook authorization was denied" if error == "access_denied" else (error_description or error)
            return _redirect_error(target, "oauth_denied", message)

        if not code or not state:
            return _json_error("Missing code or state parameter", 400)

        try:
            decoded = codec.decode(state)
        except StateDecodeError:
            return _json_error("Invalid state parameter", 400)

        target = _target_for(decoded, fallback)

        try:
            page_id, page_name = await _connect_page(code, decoded, settings, graph, credits, bg)
        except ConnectError as e:
            log.info("[messenger] callback rejected domain=%s error=%s", decoded.domain, e.code)
            return _redirect_error(target, e.code, e.message)

        return _redirect(
            target,
            success="true",
            message=f"Successfully connected to Facebook Page: {page_name}",
            page_id=page_id,
            page_name=page_name,
        )
    except Exception:
        log.exception("[messenger] callback failed")
        if decoded is None:
            decoded = _decode_quietly(codec, state)
        target = target or _target_for(decoded, fallback)
        if not target:
            return _json_error("An error occurred during authentication", 500)
        return _redirect_error(target, "server_error", "An error occurred during authentication")


# ---------- 3. Status ----------
async def _store_page_name(website_id: int, name: str) -> None:
    try:
        await Website.filter(id=website_id).update(facebook_page_name=name)
    except Exception:
        log.exception("[messenger] failed to store page name for website=%s", website_id)


async def _lookup_page_name(graph: FacebookGraph, website: Website) -> Optional[str]:
    # cosmetic; older bindings were saved without a name
    try:
        return await graph.get_page_name(website.facebook_page_id, website.facebook_page_access_token)
    except FacebookGraphError as e:
        log.warning("[messenger] page name lookup failed for website=%s: %s", website.id, e)
    except Exception:
        log.exception("[messenger] page name lookup errored for website=%s", website.id)
    return None


@router.options("/status")
@router.options("/disconnect")
async def connection_preflight():
    return JSONResponse({}, headers=CORS_HEADERS)


@router.get("/status")
async def connection_status(
    bg: BackgroundTasks,
    license_key: Optional[str] = Query(None),
    domain: Optional[str] = Query(None),
    graph: FacebookGraph = Depends(get_graph),
):
    """
    Called by the plugin to show the connected page and to prompt for
    re-authorization before the token expires.
    """
    if not license_key or not domain:
        return _json_error("Missing license_key or domain", 400, headers=CORS_HEADERS)

    try:
        website = await Website.get_or_none(license_key=license_key, domain=domain)
        if not website:
            return _json_error("Website not found", 404, headers=CORS_HEADERS)

        if not website.has_messenger_binding:
            return JSONResponse(
                {
                    "success": True,
                    "messengerEnabled": False,
                    "tokenExpiresAt": None,
                    "facebookPageId": None,
                    "facebookPageName": None,
                },
                headers=CORS_HEADERS,
            )

        page_name = website.facebook_page_name
        if not page_name and website.facebook_page_access_token:
            page_name = await _lookup_page_name(graph, website)
            if page_name:
                bg.add_task(_store_page_name, website.id, page_name)

        return JSONResponse(
            {
                "success": True,
                "messengerEnabled": True,
                "tokenExpiresAt": _iso(website.token_expires_at),
                "facebookPageId": website.facebook_page_id,
                "facebookPageName": page_name or None,
            },
            headers=CORS_HEADERS,
        )
    except Exception:
        log.exception("[messenger] status failed domain=%s", domain)
        return _json_error("Internal server error", 500, headers=CORS_HEADERS)


# ---------- 4. Disconnect ----------
class DisconnectBody(BaseModel):
    license_key: Optional[str] = None
    domain: Optional[str] = None


async def _read_disconnect_body(request: Request) -> Optional[DisconnectBody]:
    # the plugin expects the JSON envelope, never FastAPI's 422
    try:
        return DisconnectBody.model_validate(await request.json())
    except ValueError:
        return None


@router.post("/disconnect")
async def disconnect(
    request: Request,
    graph: FacebookGraph = Depends(get_graph),
    credits: CreditsBackend = Depends(get_credits_backend),
):
    body = await _read_disconnect_body(request)
    if body is None or not body.license_key or not body.domain:
        return _json_error("Missing license key or domain", 400, headers=CORS_HEADERS)

    try:
        website = await Website.get_or_none(license_key=body.license_key, domain=body.domain)
        if not website:
            return _json_error("Website not found", 404, headers=CORS_HEADERS)

        if not website.messenger_enabled:
            return JSONResponse(
                {"success": True, "message": "Messenger is already disconnected"},
                headers=CORS_HEADERS,
            )

        page_id = website.facebook_page_id
        if page_id and website.facebook_page_access_token:
            await _best_effort(
                "webhook unsubscribe",
                graph.unsubscribe_app_from_page,
                page_id,
                website.facebook_page_access_token,
            )
        if page_id:
            await _best_effort("page cache invalidation", credits.invalidate_page_cache, page_id)

        await Website.filter(id=website.id).update(**MESSENGER_FIELDS_CLEARED)
        log.info("[messenger] disconnected website=%s page=%s", website.id, page_id)

        await _best_effort("cache refresh", credits.force_refresh, website.domain)

        return JSONResponse(
            {"success": True, "message": "Messenger disconnected successfully"},
            headers=CORS_HEADERS,
        )
    except Exception:
        log.exception("[messenger] disconnect failed domain=%s", body.domain)
        return _json_error("Internal server error", 500, headers=CORS_HEADERS)
