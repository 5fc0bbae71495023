"""
Tests for console sign-in and the admin guard.
"""
from datetime import datetime, timedelta, timezone

import jwt

from models.auth import User


class TestSignin:
    async def test_valid_credentials(self, client, admin_user):
        r = await client.post("/api/auth/signin", json={"email": "Admin@Example.com ", "password": "correct-horse"})

        assert r.status_code == 200
        body = r.json()
        assert body["user"] == {"user_id": admin_user.id, "name": "Admin", "email": "admin@example.com", "role": "admin"}

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.json()["user"]["email"] == "admin@example.com"

    async def test_wrong_password(self, client, admin_user):
        r = await client.post("/api/auth/signin", json={"email": "admin@example.com", "password": "nope"})
        assert r.status_code == 400
        assert r.json()["detail"] == "Invalid Credentials."

    async def test_unknown_email(self, client, db):
        r = await client.post("/api/auth/signin", json={"email": "ghost@example.com", "password": "x"})
        assert r.status_code == 400

    async def test_inactive_user(self, client, admin_user):
        admin_user.is_active = False
        await admin_user.save()
        r = await client.post("/api/auth/signin", json={"email": "admin@example.com", "password": "correct-horse"})
        assert r.status_code == 400


class TestToken:
    async def test_expired_token(self, client, admin_user, settings):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"id": admin_user.id, "role": "admin", "exp": int(past.timestamp())},
            settings.jwt_secret,
            algorithm="HS256",
        )
        r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401

    async def test_wrong_secret(self, client, admin_user):
        token = jwt.encode({"id": admin_user.id, "role": "admin"}, "other-secret", algorithm="HS256")
        r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401

    async def test_deleted_user(self, client, auth_headers, admin_user):
        await User.filter(id=admin_user.id).delete()
        r = await client.get("/api/auth/me", headers=auth_headers)
        assert r.status_code == 401
