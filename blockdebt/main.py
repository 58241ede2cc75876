"""Application entrypoint for the BlockDebt service."""

import asyncio
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
import uvicorn

from blockdebt.api.router import build_router
from blockdebt.core import AppSettings, SystemClock, get_logger, load_settings, setup_logging
from blockdebt.gateway import BlockDebtBot
from blockdebt.models.repositories import LoanStore
from blockdebt.repositories import build_store
from blockdebt.services import AccrualEngine, AccrualSweeper, LoanLifecycleService, PaymentLedger


logger = get_logger(__name__)


@dataclass
class Services:
    """Wired service graph shared by the HTTP app and the gateway."""

    store: LoanStore
    accrual: AccrualEngine
    ledger: PaymentLedger
    lifecycle: LoanLifecycleService
    sweeper: AccrualSweeper


def build_services(settings: AppSettings, store: Optional[LoanStore] = None) -> Services:
    """Create the store and every service on top of it."""
    store = store or build_store(settings)
    clock = SystemClock()
    accrual = AccrualEngine(
        store=store,
        clock=clock,
        holidays=settings.holidays,
        daily_rate=settings.accrual_daily_rate,
    )
    ledger = PaymentLedger(store=store, clock=clock)
    lifecycle = LoanLifecycleService(
        store=store,
        clock=clock,
        accrual=accrual,
        ledger=ledger,
        epsilon=settings.accrual_epsilon,
    )
    sweeper = AccrualSweeper(settings=settings, accrual=accrual, store=store)
    return Services(store=store, accrual=accrual, ledger=ledger, lifecycle=lifecycle, sweeper=sweeper)


def create_app(settings: Optional[AppSettings] = None, services: Optional[Services] = None) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    services = services or build_services(settings)

    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.include_router(build_router(services.lifecycle))
    app.state.settings = settings
    app.state.services = services
    app.state.bot = None
    app.state.bot_task = None

    @app.on_event("startup")
    async def _startup_background_services() -> None:
        """Start the accrual sweeper and the Discord gateway."""
        try:
            if settings.discord_enabled:
                await _start_gateway(app, settings, services)
            await services.sweeper.start()
        except Exception:
            logger.exception("Failed to start background services during startup.")

    @app.on_event("shutdown")
    async def _shutdown_background_services() -> None:
        """Stop background services on application shutdown."""
        try:
            await services.sweeper.stop()
            await _stop_gateway(app)
        except Exception:
            logger.exception("Failed to stop background services during shutdown.")

    logger.info("Application initialized: %s store=%s", settings.app_name, settings.store_backend)
    return app


async def _start_gateway(app: FastAPI, settings: AppSettings, services: Services) -> None:
    if not settings.discord_token:
        logger.warning("Discord gateway enabled but no token configured.")
        return

    bot = BlockDebtBot(settings=settings, lifecycle=services.lifecycle)
    services.sweeper.set_callback(bot.on_accrued)
    app.state.bot = bot
    app.state.bot_task = asyncio.create_task(bot.start(settings.discord_token), name="discord-gateway")
    logger.info("Discord gateway starting.")


async def _stop_gateway(app: FastAPI) -> None:
    bot = app.state.bot
    if bot is None:
        return
    await bot.close()
    task = app.state.bot_task
    if task is not None:
        try:
            await task
        except asyncio.CancelledError:
            logger.info("Discord gateway task cancelled.")
    app.state.bot = None
    app.state.bot_task = None


app = create_app()


def run() -> None:
    """Start the ASGI server."""
    settings = load_settings()
    try:
        uvicorn.run("blockdebt.main:app", host=settings.host, port=settings.port, reload=settings.debug)
    except Exception:
        logger.exception("Failed to start uvicorn server.")
        raise


if __name__ == "__main__":
    run()
