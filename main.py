import asyncio
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from dal.session_dal import SessionDAL
from routes.webhook_route import router as webhook_router
from services.bot.state_machine import SessionStateMachine
from services.bot.update_poller import UpdatePoller
from services.jobs.job_manager import JobManager
from services.kie.kie_client import KieClient
from services.localizer import Localizer
from services.model_catalog import ModelCatalog
from services.telegram.telegram_client import TelegramClient
from utils.config import Settings
from utils.database_init import AsyncDatabaseInitializer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - settings and logging
      - the SQLite session database (at DATABASE_DIR/app.db, kept across restarts)
      - the model catalog and translations
      - the Telegram and Kie.ai clients, the job manager and the state machine
    and attach them to `app.state`. In polling mode the getUpdates loop runs
    as a background task for the lifetime of the app.
    """
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.state.settings = settings

    db_initializer = AsyncDatabaseInitializer(settings.database_dir)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer
    app.state.session_store = SessionDAL(db_initializer, default_language=settings.default_lang)

    catalog = await ModelCatalog.load(settings.models_file)
    localizer = await Localizer.load(settings.locales_dir, settings.default_lang)
    app.state.catalog = catalog
    app.state.localizer = localizer

    telegram = TelegramClient(settings.telegram_token)
    kie = KieClient(settings.kie_api_key, base_url=settings.kie_base_url)
    app.state.telegram = telegram
    app.state.kie = kie

    jobs = JobManager(kie, telegram, catalog, localizer)
    app.state.jobs = jobs
    app.state.state_machine = SessionStateMachine(app.state.session_store, jobs, catalog, localizer, telegram)
    app.state.update_dispatcher = UpdatePoller(telegram, app.state.state_machine)

    poller_task = None
    if settings.telegram_mode == "polling":
        poller_task = asyncio.create_task(app.state.update_dispatcher.run(), name="telegram-poller")

    try:
        yield
    finally:
        if poller_task is not None:
            poller_task.cancel()
            await asyncio.gather(poller_task, return_exceptions=True)
        await app.state.update_dispatcher.drain()
        await jobs.shutdown()
        for client in (telegram, kie):
            try:
                await client.aclose()
            except Exception as exc:
                logger.warning("Error closing HTTP client: %s", exc)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports which components are initialized.
        """
        state = request.app.state
        settings = getattr(state, "settings", None)
        return {
            "ok": True,
            "db_initialized": hasattr(state, "db_initializer"),
            "catalog_loaded": hasattr(state, "catalog"),
            "transport_ready": hasattr(state, "telegram"),
            "mode": settings.telegram_mode if settings is not None else None,
        }

    app.include_router(webhook_router)

    return app


app = create_app()


def run() -> None:
    """
    Serve the app with uvicorn; HOST and PORT default to 0.0.0.0:8000.
    """
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
