from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from branchplayer.core.config import settings
from branchplayer.core.logging import setup_logging

from branchplayer.state.redis_state import RedisState
from branchplayer.state.document_store import RedisDocumentStore
from branchplayer.state.local_store import LocalStore

from branchplayer.services.session import create_session
from branchplayer.workers.background import BackgroundRunner

from branchplayer.ws.manager import WebSocketManager

from branchplayer.api.routes_ws import router as ws_router
from branchplayer.api.routes_device import router as device_router
from branchplayer.api.routes_player import router as player_router
from branchplayer.api.routes_library import router as library_router
from branchplayer.api.routes_admin import router as admin_router
from branchplayer.api.routes_media import router as media_router

log = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    log.info("app_starting")

    os.makedirs(settings.media_dir, exist_ok=True)

    redis = Redis.from_url(settings.redis_url, decode_responses=False)
    try:
        await redis.ping()
        log.info("redis_connected")
    except Exception:
        # feeds stay silent until the store is reachable; the UI shows loading
        log.exception("redis_unreachable")

    app.state.redis = redis
    app.state.state = RedisState(redis)
    store = RedisDocumentStore(app.state.state)

    local = LocalStore(Path(settings.local_db_path))
    http = httpx.AsyncClient(timeout=settings.download_timeout_s, follow_redirects=True)

    # WEBSOCKET
    runner = BackgroundRunner()
    app.state.ws_manager = WebSocketManager(runner)

    # DEVICE SESSION
    session = create_session(
        settings,
        store,
        local,
        http=http,
        sink=app.state.ws_manager.publish,
        runner=runner,
    )
    app.state.session = session
    await session.controller.start()
    log.info("device_session_started", extra={"mode": session.ctx.mode})

    try:
        yield
    finally:
        try:
            await session.controller.teardown()
        except Exception:
            log.exception("error_tearing_down_device")

        try:
            await runner.stop()
        except Exception:
            log.exception("error_stopping_background")

        try:
            await http.aclose()
        except Exception:
            pass

        try:
            await redis.close()
        except Exception:
            pass


app = FastAPI(
    title=getattr(settings, "app_name", "Branch Player"),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ws_router)
app.include_router(device_router)
app.include_router(player_router)
app.include_router(library_router)
app.include_router(admin_router)
app.include_router(media_router)


@app.get("/health")
def health():
    return {
        "ok": True,
        "app": getattr(settings, "app_name", "Branch Player"),
        "env": getattr(settings, "app_env", "unknown"),
    }
