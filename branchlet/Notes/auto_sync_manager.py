# auto_sync_manager.py
# Description: Manages automatic background pulls of the note tree
#
# Imports
import asyncio
from typing import Awaitable, Callable, Optional
from datetime import datetime
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from .sync_engine import SyncResult
#
########################################################################################################################
#
# Classes:

class AutoSyncManager:
    """
    Pulls the remote tree every ``sync_interval`` seconds.

    A tick is skipped while the service is already syncing or holds local
    edits that have not been pushed, so a background pull never overwrites
    unsynced work. An interval of 0 disables the loop.
    """

    def __init__(self, sync_service, sync_interval: int = 0,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        self.sync_service = sync_service
        self.sync_interval = sync_interval
        self._sleep = sleep or asyncio.sleep

        self.is_running = False
        self.sync_task: Optional[asyncio.Task] = None
        self.last_sync_time: Optional[datetime] = None
        self.sync_in_progress = False

        # Callbacks for UI updates
        self.on_sync_started: Optional[Callable[[], None]] = None
        self.on_sync_completed: Optional[Callable[[SyncResult], None]] = None
        self.on_sync_error: Optional[Callable[[str], None]] = None
        self.on_sync_skipped: Optional[Callable[[str], None]] = None

    @property
    def enabled(self) -> bool:
        return self.sync_interval > 0

    def start(self) -> bool:
        """Start the pull loop. Returns False when disabled or already running."""
        if self.is_running:
            return False
        if not self.enabled:
            logger.info("Auto-sync disabled (interval is 0)")
            return False

        self.is_running = True
        self.sync_task = asyncio.create_task(self._sync_loop())
        logger.info(f"Auto-sync started, pulling every {self.sync_interval}s")
        return True

    def stop(self):
        """Stop auto-sync."""
        self.is_running = False
        if self.sync_task:
            self.sync_task.cancel()
            self.sync_task = None
        logger.info("Auto-sync stopped")

    def _skip_reason(self) -> Optional[str]:
        if self.sync_in_progress or self.sync_service.status.is_busy:
            return "a sync operation is already running"
        if self.sync_service.has_unsynced_changes():
            return f"{self.sync_service.unsynced_count()} local notes are not pushed yet"
        return None

    async def _sync_loop(self):
        """Main loop: sleep for the interval, then pull if nothing forbids it."""
        while self.is_running:
            try:
                await self._sleep(self.sync_interval)
                if not self.is_running:
                    break
                await self.trigger_sync()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # A failing tick, callbacks included, must not end the loop
                logger.error(f"Error in auto-sync loop: {e}")
                if self.on_sync_error:
                    try:
                        self.on_sync_error(str(e))
                    except Exception as callback_error:
                        logger.error(f"Auto-sync error callback failed: {callback_error}")

    async def _perform_sync(self) -> Optional[SyncResult]:
        """Perform the actual pull."""
        self.sync_in_progress = True
        try:
            if self.on_sync_started:
                self.on_sync_started()

            result = await self.sync_service.pull()
            self.last_sync_time = datetime.now()

            if result.succeeded:
                if self.on_sync_completed:
                    self.on_sync_completed(result)
                logger.debug(f"Auto-sync completed: {result.message}")
            else:
                logger.error(f"Auto-sync failed: {result.message}")
                if self.on_sync_error:
                    self.on_sync_error(result.message)
            return result
        finally:
            self.sync_in_progress = False

    async def trigger_sync(self) -> Optional[SyncResult]:
        """Pull now unless a sync is running or local edits are pending; returns None when skipped."""
        reason = self._skip_reason()
        if reason:
            logger.debug(f"Auto-sync skipped: {reason}")
            if self.on_sync_skipped:
                self.on_sync_skipped(reason)
            return None
        return await self._perform_sync()

    def update_settings(self, sync_interval: Optional[int] = None):
        """Update auto-sync settings; restarts the loop if the interval changed while running."""
        if sync_interval is None or sync_interval == self.sync_interval:
            return
        was_running = self.is_running
        if was_running:
            self.stop()
        self.sync_interval = sync_interval
        logger.info(f"Auto-sync interval set to {sync_interval}s")
        if was_running:
            self.start()

#
# End of auto_sync_manager.py
########################################################################################################################
