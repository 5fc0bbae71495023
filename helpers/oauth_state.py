# helpers/oauth_state.py
"""
Continuation data threaded through the Facebook OAuth redirect.

The WordPress plugin expects the plain wire format: standard base64 of a JSON
object {"domain", "licenseKey", "redirect_uri"}. It is NOT signed; whatever
Facebook hands back is what the callback sees, so the callback re-validates
the license against the database before trusting it.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Optional, Protocol


class StateDecodeError(ValueError):
    pass


@dataclass(frozen=True)
class OAuthState:
    domain: str
    licenseKey: str
    redirect_uri: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "licenseKey": self.licenseKey,
            "redirect_uri": self.redirect_uri,
        }


class StateCodec(Protocol):
    def encode(self, state: OAuthState) -> str: ...

    def decode(self, token: str) -> OAuthState: ...


class Base64StateCodec:
    """Unsigned base64(JSON) codec compatible with the existing plugin."""

    def encode(self, state: OAuthState) -> str:
        raw = json.dumps(state.to_dict(), separators=(",", ":"))
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def decode(self, token: str) -> OAuthState:
        if not token:
            raise StateDecodeError("empty state")

        # query strings sometimes turn '+' into ' ', and callers may strip padding
        cleaned = token.strip().replace(" ", "+").replace("-", "+").replace("_", "/")
        cleaned += "=" * ((4 - len(cleaned) % 4) % 4)
        try:
            raw = base64.b64decode(cleaned.encode("ascii"), validate=True)
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise StateDecodeError(f"state is not base64 JSON: {e}") from e

        if not isinstance(data, dict):
            raise StateDecodeError("state must decode to an object")

        domain = data.get("domain")
        license_key = data.get("licenseKey")
        if not isinstance(domain, str) or not isinstance(license_key, str) or not domain or not license_key:
            raise StateDecodeError("state is missing domain or licenseKey")

        redirect_uri = data.get("redirect_uri")
        if redirect_uri is not None and not isinstance(redirect_uri, str):
            redirect_uri = None
        return OAuthState(domain=domain, licenseKey=license_key, redirect_uri=redirect_uri)


_default_codec = Base64StateCodec()


def get_state_codec() -> StateCodec:
    return _default_codec
