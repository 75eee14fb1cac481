# portfolio_sync/app/main.py

import asyncio
from typing import Optional

from core.logging import configure_logging, get_logger
from app.containers import AppContainer
from services.auth.login import LoginAutomation
from services.broker_sync.models import SyncAllSummary


class ApplicationOrchestrator:
    """Builds the container, owns startup/shutdown and runs sync jobs."""

    def __init__(self, container: Optional[AppContainer] = None):
        self.container = container or AppContainer()
        self.settings = self.container.settings()
        configure_logging(self.settings)
        self.logger = get_logger("portfolio_sync.main", component="application")

        self.db_manager = self.container.db_manager()
        self.sync_service = self.container.broker_sync_service()
        self.repository = self.container.sync_repository()

    async def startup(self):
        """Initialize the database before any sync runs."""
        self.logger.info("Starting Portfolio Sync",
                         version=self.settings.version,
                         environment=self.settings.environment.value)
        await self.db_manager.init()
        if not await self.db_manager.verify_connection():
            raise RuntimeError("Database connection could not be verified")

    async def shutdown(self):
        self.sync_service.reset_session()
        await self.db_manager.shutdown()
        self.logger.info("Portfolio Sync stopped")

    async def sync_all(self, login: Optional[LoginAutomation] = None) -> SyncAllSummary:
        return await self.sync_service.sync_all_accounts(login=login)


async def run_sync_all(login: Optional[LoginAutomation] = None) -> SyncAllSummary:
    """Run one sync-all pass with startup and shutdown around it."""
    app = ApplicationOrchestrator()
    await app.startup()
    try:
        return await app.sync_all(login=login)
    finally:
        await app.shutdown()


def main():
    summary = asyncio.run(run_sync_all())
    print(summary.message)


if __name__ == "__main__":
    main()
