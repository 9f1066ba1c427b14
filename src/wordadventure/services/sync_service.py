"""Polling for snapshot changes made by other processes."""
import asyncio
import logging
from typing import Dict, Optional

from wordadventure.config import settings
from wordadventure.services.lifecycle_service import ReconciliationTrigger, SessionLifecycleManager

logger = logging.getLogger(__name__)


class StoragePoller:
    """Turns writes by other processes into storage-change triggers."""

    def __init__(self, lifecycle: SessionLifecycleManager, poll_interval: Optional[float] = None):
        """Initialize the poller for a lifecycle manager."""
        self.lifecycle = lifecycle
        self.poll_interval = poll_interval if poll_interval is not None else settings.persistence.poll_interval_seconds
        self.tasks: Dict[str, asyncio.Task] = {}
        self.running = False
        self.checks = 0

    async def start(self) -> None:
        """Start polling."""
        if self.running:
            return

        self.running = True
        logger.info("Starting storage poller...")
        self.tasks["storage_poll"] = asyncio.create_task(self._run_storage_poll())

    async def stop(self) -> None:
        """Stop polling."""
        if not self.running:
            return

        self.running = False
        logger.info("Stopping storage poller...")

        for task in self.tasks.values():
            task.cancel()

        await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        self.tasks.clear()

    def poll_once(self) -> bool:
        """Check storage once; returns True when a newer snapshot was reconciled."""
        self.checks += 1
        coordinator = self.lifecycle.coordinator
        if not coordinator.has_newer_remote():
            return False
        logger.debug(f"Newer snapshot found for {coordinator.key}")
        return self.lifecycle.dispatch(ReconciliationTrigger.STORAGE_CHANGE, coordinator.key)

    async def _run_storage_poll(self) -> None:
        """Run the storage polling task."""
        while self.running:
            try:
                self.poll_once()
                await asyncio.sleep(self.poll_interval)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in storage poll task: %s", str(e))
                await asyncio.sleep(self.poll_interval)
