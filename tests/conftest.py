"""
Shared fixtures: in-memory Tortoise database, fake Graph/credits clients and
an ASGI test client wired to them.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from argon2 import PasswordHasher
from tortoise import Tortoise

from helpers.credits_backend import CreditsBackend, CreditsResult
from helpers.facebook_graph import FacebookGraph, FacebookGraphError
from helpers.settings import Settings
from helpers.tortoise_config import MODEL_MODULES
from helpers.user_token import generate_user_token
from main import create_app
from models.auth import User
from models.website import Plan, Status, Website


class FakeGraph(FacebookGraph):
    """Graph client with canned answers; records every network call."""

    def __init__(self):
        super().__init__(app_id="app-123", app_secret="app-secret", version="v24.0")
        self.calls: List[Tuple[str, tuple]] = []
        self.token_response: Dict[str, Any] = {"access_token": "user-token"}
        self.token_error: Optional[Exception] = None
        self.pages: List[Dict[str, Any]] = [
            {"id": "page-1", "name": "Example Page", "access_token": "page-short"},
            {"id": "page-2", "name": "Second Page", "access_token": "page-short-2"},
        ]
        self.pages_error: Optional[Exception] = None
        self.long_lived: Dict[str, Any] = {"access_token": "page-long", "expires_in": 5184000}
        self.long_lived_error: Optional[Exception] = None
        self.before_long_lived: Optional[Callable[[], Awaitable[None]]] = None
        self.subscribe_error: Optional[Exception] = None
        self.unsubscribe_error: Optional[Exception] = None
        self.page_name: Optional[str] = "Looked Up Page"
        self.page_name_error: Optional[Exception] = None

    def called(self, name: str) -> List[tuple]:
        return [args for n, args in self.calls if n == name]

    async def exchange_code_for_user_token(self, code, redirect_uri):
        self.calls.append(("exchange_code_for_user_token", (code, redirect_uri)))
        if self.token_error:
            raise self.token_error
        return self.token_response

    async def exchange_for_long_lived_token(self, short_lived_token):
        self.calls.append(("exchange_for_long_lived_token", (short_lived_token,)))
        if self.before_long_lived:
            await self.before_long_lived()
        if self.long_lived_error:
            raise self.long_lived_error
        return self.long_lived

    async def get_user_pages(self, user_token):
        self.calls.append(("get_user_pages", (user_token,)))
        if self.pages_error:
            raise self.pages_error
        return self.pages

    async def get_page_name(self, page_id, page_token):
        self.calls.append(("get_page_name", (page_id, page_token)))
        if self.page_name_error:
            raise self.page_name_error
        return self.page_name

    async def subscribe_app_to_page(self, page_id, page_token, fields=()):
        self.calls.append(("subscribe_app_to_page", (page_id, page_token)))
        if self.subscribe_error:
            raise self.subscribe_error
        return {"success": True}

    async def unsubscribe_app_from_page(self, page_id, page_token):
        self.calls.append(("unsubscribe_app_from_page", (page_id, page_token)))
        if self.unsubscribe_error:
            raise self.unsubscribe_error
        return {"success": True}


class FakeCredits(CreditsBackend):
    """Credits backend that records calls instead of hitting the network."""

    def __init__(self):
        super().__init__("https://credits.test", "admin-token")
        self.calls: List[Tuple[str, tuple]] = []
        self.fail = False
        self.usage_logs: Dict[str, Any] = {"logs": [], "total": 0, "page": 1, "per_page": 50}

    def called(self, name: str) -> List[tuple]:
        return [args for n, args in self.calls if n == name]

    def _result(self, data=None) -> CreditsResult:
        if self.fail:
            return CreditsResult(success=False, message="Failed to sync credits")
        return CreditsResult(success=True, data=data or {})

    async def sync_credits(self, domain, credits_total, credits_remaining, plan):
        self.calls.append(("sync_credits", (domain, credits_total, credits_remaining, plan)))
        return self._result()

    async def get_usage_logs(self, domain, page=1, per_page=50):
        self.calls.append(("get_usage_logs", (domain, page, per_page)))
        return self._result(self.usage_logs)

    async def update_page_cache(self, page_id, domain):
        self.calls.append(("update_page_cache", (page_id, domain)))
        return self._result()

    async def invalidate_page_cache(self, page_id):
        self.calls.append(("invalidate_page_cache", (page_id,)))
        return self._result()

    async def force_refresh(self, domain):
        self.calls.append(("force_refresh", (domain,)))
        return self._result()


@pytest.fixture
async def db():
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODEL_MODULES}, use_tz=True)
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def settings():
    return Settings(
        facebook_app_id="app-123",
        facebook_app_secret="app-secret",
        graph_version="v24.0",
        admin_panel_url="https://admin.example.com",
        credits_backend_url="https://credits.test",
        admin_token="admin-token",
        jwt_secret="test-secret",
    )


@pytest.fixture
def graph():
    return FakeGraph()


@pytest.fixture
def credits():
    return FakeCredits()


@pytest.fixture
async def make_client(db, graph, credits):
    clients: List[httpx.AsyncClient] = []

    def _make(settings: Settings) -> httpx.AsyncClient:
        app = create_app(settings=settings, graph=graph, credits=credits, init_database=False)
        c = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
            follow_redirects=False,
        )
        clients.append(c)
        return c

    yield _make
    for c in clients:
        await c.aclose()


@pytest.fixture
async def client(make_client, settings):
    return make_client(settings)


@pytest.fixture
def make_website(db):
    counter = {"n": 0}

    async def _make(**kwargs) -> Website:
        counter["n"] += 1
        defaults = {
            "domain": f"site{counter['n']}.example.com",
            "title": "Example",
            "license_key": f"key-{counter['n']}",
            "plan": Plan.BASIC,
            "status": Status.ACTIVE,
            "credits_total": 1000,
            "credits_remaining": 800,
            "credits_used": 200,
        }
        defaults.update(kwargs)
        return await Website.create(**defaults)

    return _make


@pytest.fixture
async def admin_user(db):
    return await User.create(
        name="Admin",
        email="admin@example.com",
        password=PasswordHasher().hash("correct-horse"),
        role="admin",
    )


@pytest.fixture
def auth_headers(admin_user, settings):
    return {"Authorization": f"Bearer {generate_user_token(admin_user, settings)}"}


@pytest.fixture
def graph_error():
    return FacebookGraphError("GET oauth/access_token -> HTTP 400: Invalid code", status=400)
