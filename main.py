# main.py
from dotenv import load_dotenv
load_dotenv()

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from helpers.cors import ConsoleCORSMiddleware
from helpers.credits_backend import CreditsBackend
from helpers.facebook_graph import FacebookGraph
from helpers.settings import Settings
from helpers.tortoise_config import close_db, init_db

# ----- Routers / controllers -----
from controllers.auth_controller import auth_router
from controllers.dashboard_controller import router as dashboard_router
from controllers.logs_controller import router as logs_router
from controllers.messenger_controller import PLUGIN_API_PREFIX, router as messenger_router
from controllers.websites_controller import router as websites_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


def create_app(
    settings: Optional[Settings] = None,
    graph: Optional[FacebookGraph] = None,
    credits: Optional[CreditsBackend] = None,
    init_database: bool = True,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if init_database:
            await init_db(settings.database_url)
        yield
        if init_database:
            await close_db()

    app = FastAPI(title="AI Search Admin", lifespan=lifespan)
    app.state.settings = settings
    app.state.graph = graph or FacebookGraph.from_settings(settings)
    app.state.credits_backend = credits or CreditsBackend.from_settings(settings)

    # ----- Middlewares -----
    app.add_middleware(
        ConsoleCORSMiddleware,
        skip_prefixes=[PLUGIN_API_PREFIX],
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ----- Routers -----
    app.include_router(auth_router, prefix="/api")
    app.include_router(websites_router, prefix="/api")
    app.include_router(logs_router, prefix="/api")
    app.include_router(dashboard_router, prefix="/api")
    app.include_router(messenger_router, prefix="/api")

    @app.get("/")
    def greetings():
        return {"Message": "AI Search admin console API"}

    return app


app = create_app()
