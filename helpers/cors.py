# helpers/cors.py
from typing import Iterable

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send


class ConsoleCORSMiddleware(CORSMiddleware):
    """
    CORS for the admin console. Paths under `skip_prefixes` bypass it: the
    WordPress plugin endpoints answer their own preflights with fixed headers.
    """

    def __init__(self, app: ASGIApp, skip_prefixes: Iterable[str] = (), **kwargs):
        super().__init__(app, **kwargs)
        self.skip_prefixes = tuple(skip_prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.skip_prefixes and scope["path"].startswith(self.skip_prefixes):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)
