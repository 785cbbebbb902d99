import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI

import sys
from pathlib import Path

# Add project root to path for package imports
base_dir = Path(__file__).parent
sys.path.insert(0, str(base_dir))

from config import load_config, resolve_data_path
from db.local_storage import LocalStorage
from db.remote_store import SQLiteRemoteStore
from routes import study_router, sync_router, stats_router
from routes.deps import Services
from utils.session import StudySessionManager
from utils.sync import SyncCoordinator

logger = logging.getLogger(__name__)


def build_services(config: Optional[dict] = None) -> Services:
    """Wire store, local persistence, remote store, sessions and sync from config."""
    config = config or load_config()
    local = LocalStorage(Path(config["storage"]["data_dir"]).expanduser())
    store = local.open_store()
    local.attach(store)
    remote = SQLiteRemoteStore(resolve_data_path(config, config["sync"]["remote_db"]))
    remote.init_db()
    sync_cfg = config["sync"]
    coordinator = SyncCoordinator(
        store,
        remote,
        user_id=sync_cfg["user_id"],
        max_retries=sync_cfg["max_retries"],
        backoff_base=sync_cfg["backoff_base_seconds"],
        timeout=sync_cfg["timeout_seconds"],
    )
    sessions = StudySessionManager(
        store,
        max_cards=config["session"]["max_cards"],
        history=local.load_history(),
    )
    local.attach_history(sessions)
    return Services(config=config, store=store, sessions=sessions, sync=coordinator)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """App factory for the host process; the subsystem has no server of its own."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: build services if the host did not inject them, start background sync
        if app.state.services is None:
            app.state.services = build_services()
        current = app.state.services
        sync_cfg = current.config.get("sync", {})
        task = None
        if sync_cfg.get("background"):
            task = asyncio.create_task(current.sync.run_periodic(sync_cfg.get("interval_seconds", 300)))
        yield
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        # Shutdown: last chance to push offline reviews
        report = await current.sync.flush()
        if not report.ok:
            logger.warning("Unsynced changes kept locally: %s", report.degraded)

    app = FastAPI(
        title="LinguaFlip",
        description="Spaced-repetition scheduling with offline-first sync",
        lifespan=lifespan,
    )
    app.state.services = services

    # Include routers
    app.include_router(study_router, prefix="/study", tags=["study"])
    app.include_router(sync_router, prefix="/sync", tags=["sync"])
    app.include_router(stats_router, prefix="/stats", tags=["stats"])
    return app
