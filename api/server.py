# api/server.py
import asyncio
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from prometheus_client import make_asgi_app
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from api.auth import require_api_key
from api.routes.webhook import router as webhook_router
from api.schemas import HealthResponse, ReloadResponse
from core.config import ConfigStore, ConfigWatcher, default_config_path
from core.dispatcher import Dispatcher
from core.git_manager import MirrorManager


# --- Lifespan Manager (Startup/Shutdown) ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    dispatcher = getattr(app.state, "dispatcher", None)
    if dispatcher is None:
        # ConfigurationError here is fatal: there is no previous snapshot to fall back on
        store = ConfigStore(default_config_path())
        dispatcher = Dispatcher(store)
        app.state.dispatcher = dispatcher

    config = dispatcher.store.current
    mirrors = MirrorManager(config.workdir, state_file=config.state_file)
    logger.info(
        f"Dispatcher ready: {len(config.repositories)} rules, "
        f"{len(mirrors.list_mirrors())} existing mirrors in {config.workdir}"
    )

    watcher_task = asyncio.create_task(ConfigWatcher(dispatcher.store).start())

    yield

    # Cleanup
    watcher_task.cancel()
    try:
        await watcher_task
    except asyncio.CancelledError:
        pass


# --- App Definition ---
app = FastAPI(title="git-notify-dispatcher", lifespan=lifespan)

# --- Rate Limiting (SlowAPI) ---


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[os.getenv("NOTIFY_RATE_LIMIT", "60/minute")],
)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request, exc):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded"},
    )


app.add_middleware(SlowAPIMiddleware)


# Mount Prometheus Metrics Endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    config = request.app.state.dispatcher.store.current
    mirrors = MirrorManager(config.workdir, state_file=config.state_file)
    return {"status": "ok", "mirrors": len(mirrors.list_mirrors())}


@app.post(
    "/reload", response_model=ReloadResponse, dependencies=[Depends(require_api_key)]
)
def reload_config(request: Request):
    """Reload the configuration file now instead of waiting for the watcher."""
    store = request.app.state.dispatcher.store
    reloaded = store.reload()
    return {"reloaded": reloaded, "repositories": len(store.current.repositories)}


app.include_router(webhook_router)
