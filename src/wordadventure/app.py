"""Application wiring for a single learner process."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from wordadventure.config import settings
from wordadventure.models.base import SessionLocal, init_db
from wordadventure.monitoring import start_monitoring
from wordadventure.services.catalog_service import WordCatalog, load_catalog
from wordadventure.services.learning_service import LearningService
from wordadventure.services.lifecycle_service import ReconciliationTrigger, SessionLifecycleManager
from wordadventure.services.outcome_service import SqlOutcomeSink
from wordadventure.services.persistence_service import PersistenceCoordinator
from wordadventure.services.storage_service import LocalBroadcastHub, SqlStorageBackend, StorageBackend
from wordadventure.services.sync_service import StoragePoller


class WordAdventureApp:
    """Main application class."""

    def __init__(
        self,
        profile_id: str = "default",
        catalog: Optional[WordCatalog] = None,
        storage: Optional[StorageBackend] = None,
    ):
        """Initialize the application."""
        self.profile_id = profile_id
        self.catalog = catalog
        self.storage = storage
        self.hub = LocalBroadcastHub()
        self.coordinator: Optional[PersistenceCoordinator] = None
        self.lifecycle: Optional[SessionLifecycleManager] = None
        self.learning: Optional[LearningService] = None
        self.poller: Optional[StoragePoller] = None
        self.db: Optional[Session] = None
        self.running = False
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        try:
            # Initialize database
            init_db()
            self.db = SessionLocal()
            self.logger.info("Database initialized")

            if self.catalog is None:
                self.catalog = load_catalog(settings.paths.catalog_file)
            if self.storage is None:
                self.storage = SqlStorageBackend(max_value_bytes=settings.persistence.max_snapshot_bytes)

            self.coordinator = PersistenceCoordinator(self.storage, self.profile_id, notifier=self.hub)
            self.lifecycle = SessionLifecycleManager(self.coordinator)
            snapshot = self.lifecycle.initialize()
            self.lifecycle.attach(self.hub)
            self.logger.info(
                f"Session {snapshot.session_number} ready for profile {self.profile_id} "
                f"({'restored' if self.lifecycle.restored else 'fresh'})"
            )

            self.learning = LearningService(self.catalog, self.coordinator, sink=SqlOutcomeSink(self.db))

            self.poller = StoragePoller(self.lifecycle)
            await self.poller.start()
            self.logger.info("Storage poller started")

            if settings.monitoring.enabled:
                start_monitoring(settings.monitoring.port)
                self.logger.info(f"Metrics exported on port {settings.monitoring.port}")

            self.running = True

        except Exception as e:
            self.logger.error("Failed to start application: %s", str(e))
            await self._shutdown()
            raise

    async def stop(self) -> None:
        """Stop the application, flushing pending writes."""
        if not self.running:
            return
        await self._shutdown()

    async def _shutdown(self) -> None:
        try:
            if self.poller:
                await self.poller.stop()
                self.poller = None
                self.logger.info("Storage poller stopped")

            if self.lifecycle:
                self.lifecycle.dispatch(ReconciliationTrigger.TEARDOWN)
                self.lifecycle.detach()

            if self.coordinator:
                self.coordinator.close()
                self.logger.info("Pending session state flushed")

            if self.learning:
                self.learning.close()
                self.learning = None

            if self.db:
                self.db.close()
                self.db = None
                self.logger.info("Database session closed")

        finally:
            self.running = False
