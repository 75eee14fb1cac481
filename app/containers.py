# Application DI container
from dependency_injector import containers, providers

from core.config.settings import Settings
from core.database.connection import DatabaseManager
from services.auth.session_manager import SessionManager
from services.broker_sync.margin_enricher import MarginEnricher
from services.broker_sync.repository import SyncRepository
from services.broker_sync.retry import RetryOrchestrator
from services.broker_sync.service import BrokerSyncService


class AppContainer(containers.DeclarativeContainer):
    """Application dependency injection container"""

    # Configuration
    settings = providers.Singleton(Settings)

    # Database
    db_manager = providers.Singleton(
        DatabaseManager,
        db_url=settings.provided.database.postgres_url,
        environment=settings.provided.environment,
        schema_management=settings.provided.database.schema_management
    )

    # One Kite session per process
    session_manager = providers.Singleton(
        SessionManager,
        settings=settings
    )

    retry_orchestrator = providers.Singleton(
        RetryOrchestrator,
        settings=settings,
        session_manager=session_manager
    )

    margin_enricher = providers.Singleton(
        MarginEnricher,
        settings=settings
    )

    sync_repository = providers.Singleton(
        SyncRepository,
        db_manager=db_manager
    )

    broker_sync_service = providers.Singleton(
        BrokerSyncService,
        settings=settings,
        session_manager=session_manager,
        retry_orchestrator=retry_orchestrator,
        margin_enricher=margin_enricher,
        repository=sync_repository
    )
