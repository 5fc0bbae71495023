"""
Tests for the plugin-facing status and disconnect endpoints.
"""
from datetime import datetime, timezone

import pytest

from helpers.facebook_graph import FacebookGraphError
from models.website import Website

STATUS = "/api/messenger/connect/status"
DISCONNECT = "/api/messenger/connect/disconnect"
EXPIRES = datetime(2030, 1, 15, 12, 30, 0, 123000, tzinfo=timezone.utc)


@pytest.fixture
async def connected(make_website):
    return await make_website(
        domain="example.com",
        license_key="abc",
        messenger_enabled=True,
        facebook_page_id="page-1",
        facebook_page_name="Example Page",
        facebook_page_access_token="page-long",
        token_expires_at=EXPIRES,
    )


class TestStatus:
    async def test_connected(self, client, connected):
        r = await client.get(STATUS, params={"license_key": "abc", "domain": "example.com"})

        assert r.status_code == 200
        assert r.headers["access-control-allow-origin"] == "*"
        assert r.json() == {
            "success": True,
            "messengerEnabled": True,
            "tokenExpiresAt": "2030-01-15T12:30:00.123Z",
            "facebookPageId": "page-1",
            "facebookPageName": "Example Page",
        }

    async def test_not_connected(self, client, make_website):
        await make_website(domain="example.com", license_key="abc")

        r = await client.get(STATUS, params={"license_key": "abc", "domain": "example.com"})

        assert r.json() == {
            "success": True,
            "messengerEnabled": False,
            "tokenExpiresAt": None,
            "facebookPageId": None,
            "facebookPageName": None,
        }

    async def test_enabled_without_expiry_reports_disabled(self, client, make_website):
        await make_website(domain="example.com", license_key="abc", messenger_enabled=True, facebook_page_id="page-1")
        r = await client.get(STATUS, params={"license_key": "abc", "domain": "example.com"})
        assert r.json()["messengerEnabled"] is False

    async def test_missing_name_is_looked_up_and_stored(self, client, connected, graph):
        await Website.filter(id=connected.id).update(facebook_page_name=None)

        r = await client.get(STATUS, params={"license_key": "abc", "domain": "example.com"})

        assert r.json()["facebookPageName"] == "Looked Up Page"
        assert graph.called("get_page_name") == [("page-1", "page-long")]
        assert (await Website.get(id=connected.id)).facebook_page_name == "Looked Up Page"

    async def test_failed_name_lookup_is_null(self, client, connected, graph):
        await Website.filter(id=connected.id).update(facebook_page_name=None)
        graph.page_name_error = FacebookGraphError("expired", status=400)

        r = await client.get(STATUS, params={"license_key": "abc", "domain": "example.com"})

        assert r.status_code == 200
        assert r.json()["facebookPageName"] is None
        assert r.json()["messengerEnabled"] is True

    async def test_missing_params(self, client, db):
        r = await client.get(STATUS, params={"license_key": "abc"})
        assert r.status_code == 400
        assert r.headers["access-control-allow-origin"] == "*"
        assert r.json()["success"] is False

    async def test_domain_mismatch_is_not_found(self, client, connected):
        r = await client.get(STATUS, params={"license_key": "abc", "domain": "other.com"})
        assert r.status_code == 404
        assert r.json() == {"success": False, "error": "Website not found"}


class TestDisconnect:
    async def test_disconnects_and_clears_binding(self, client, connected, graph, credits):
        r = await client.post(DISCONNECT, json={"license_key": "abc", "domain": "example.com"})

        assert r.status_code == 200
        assert r.json() == {"success": True, "message": "Messenger disconnected successfully"}
        assert r.headers["access-control-allow-origin"] == "*"

        w = await Website.get(id=connected.id)
        assert w.messenger_enabled is False
        assert w.facebook_page_id is None
        assert w.facebook_page_name is None
        assert w.facebook_page_access_token is None
        assert w.token_expires_at is None

        assert graph.called("unsubscribe_app_from_page") == [("page-1", "page-long")]
        assert credits.called("invalidate_page_cache") == [("page-1",)]
        assert credits.called("force_refresh") == [("example.com",)]

    async def test_second_disconnect_is_a_no_op(self, client, connected, graph, credits):
        await client.post(DISCONNECT, json={"license_key": "abc", "domain": "example.com"})
        graph.calls.clear()
        credits.calls.clear()

        r = await client.post(DISCONNECT, json={"license_key": "abc", "domain": "example.com"})

        assert r.json() == {"success": True, "message": "Messenger is already disconnected"}
        assert graph.calls == []
        assert credits.calls == []

    async def test_side_effect_failures_do_not_block(self, client, connected, graph, credits):
        graph.unsubscribe_error = FacebookGraphError("token expired", status=400)
        credits.fail = True

        r = await client.post(DISCONNECT, json={"license_key": "abc", "domain": "example.com"})

        assert r.json()["success"] is True
        assert (await Website.get(id=connected.id)).messenger_enabled is False

    async def test_page_freed_for_another_site(self, client, connected, make_website):
        await client.post(DISCONNECT, json={"license_key": "abc", "domain": "example.com"})
        other = await make_website(domain="other.com", facebook_page_id="page-1")
        assert other.facebook_page_id == "page-1"

    async def test_no_body(self, client, db):
        r = await client.post(DISCONNECT)
        assert r.status_code == 400
        assert r.json() == {"success": False, "error": "Missing license key or domain"}
        assert r.headers["access-control-allow-origin"] == "*"

    async def test_form_encoded_body(self, client, connected):
        r = await client.post(DISCONNECT, data={"license_key": "abc", "domain": "example.com"})
        assert r.status_code == 400
        assert r.json()["success"] is False
        assert r.headers["access-control-allow-origin"] == "*"
        assert (await Website.get(id=connected.id)).messenger_enabled is True

    @pytest.mark.parametrize("content", [b"not json", b"[1, 2]", b"null", b'{"license_key": 5, "domain": "example.com"}'])
    async def test_unusable_json(self, client, db, content):
        r = await client.post(DISCONNECT, content=content, headers={"Content-Type": "application/json"})
        assert r.status_code == 400
        assert r.json()["error"] == "Missing license key or domain"

    async def test_missing_fields(self, client, db):
        r = await client.post(DISCONNECT, json={"domain": "example.com"})
        assert r.status_code == 400
        assert r.json() == {"success": False, "error": "Missing license key or domain"}

    async def test_unknown_site(self, client, db):
        r = await client.post(DISCONNECT, json={"license_key": "abc", "domain": "example.com"})
        assert r.status_code == 404


class TestBrowserPreflight:
    """Preflights as a browser sends them, with Origin and the requested method."""

    @pytest.mark.parametrize("path, method", [(STATUS, "GET"), (DISCONNECT, "POST")])
    async def test_plugin_routes_answer_their_own_preflight(self, client, db, path, method):
        r = await client.options(
            path,
            headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": method,
                "Access-Control-Request-Headers": "content-type",
            },
        )

        assert r.status_code == 200
        assert r.headers["access-control-allow-origin"] == "*"
        assert r.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert r.headers["access-control-allow-headers"] == "Content-Type, Authorization"
        assert r.headers["access-control-max-age"] == "86400"

    async def test_cross_origin_status_carries_plugin_headers(self, client, connected):
        r = await client.get(
            STATUS,
            params={"license_key": "abc", "domain": "example.com"},
            headers={"Origin": "https://example.com"},
        )
        assert r.headers["access-control-allow-origin"] == "*"
        assert r.headers["access-control-max-age"] == "86400"

    async def test_console_routes_keep_app_cors(self, client, db):
        r = await client.options(
            "/api/websites",
            headers={"Origin": "https://console.example.com", "Access-Control-Request-Method": "PATCH"},
        )
        assert r.status_code == 200
        assert r.headers["access-control-allow-origin"] == "*"
        assert "PATCH" in r.headers["access-control-allow-methods"]
