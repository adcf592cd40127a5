"""
Catalog Synchronizer - mirrors the full remote catalog into the local store
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

from .database import ProductRepository
from .shopify_client import ShopifyCatalogClient


class CatalogSynchronizer:
    """Pages through the remote catalog and upserts every product"""

    def __init__(self, client: ShopifyCatalogClient, repository: ProductRepository):
        self.client = client
        self.repository = repository
        self.logger = logging.getLogger(__name__)

    async def sync_all(self) -> int:
        """Mirror every remote product; returns the number synced.

        Pages are upserted as they arrive. A failing page aborts the run and
        propagates; pages already upserted stay committed. Upserts are keyed
        by shopifyId so repeated runs converge to the same state.
        """
        synced = 0
        pages = 0
        cursor = None
        while True:
            products, cursor = await self.client.list_products_page(cursor)
            pages += 1
            synced += self.repository.upsert_many(products)
            self.logger.info(f"Synced page {pages}: {len(products)} products")
            if not cursor:
                break
        self.logger.info(f"Catalog sync complete: {synced} products in {pages} pages")
        return synced


@dataclass
class SyncStatus:
    running: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    products_synced: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self):
        return {
            "running": self.running,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "productsSynced": self.products_synced,
            "error": self.error,
        }


class SyncRunner:
    """Runs the synchronizer as a supervised background task.

    At most one run is in flight; triggering while running returns the
    running task. Failures are logged and recorded, never raised into the
    event loop.
    """

    def __init__(self, synchronizer: CatalogSynchronizer):
        self.synchronizer = synchronizer
        self.logger = logging.getLogger(__name__)
        self._task: Optional[asyncio.Task] = None
        self._status = SyncStatus()

    def status(self) -> SyncStatus:
        return replace(self._status)

    def trigger(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            self.logger.info("Catalog sync already running")
            return self._task
        self._status = SyncStatus(running=True, started_at=datetime.now(timezone.utc))
        self._task = asyncio.create_task(self._run(), name="catalog-sync")
        return self._task

    async def _run(self) -> Optional[int]:
        self.logger.info("Starting catalog sync")
        try:
            synced = await self.synchronizer.sync_all()
        except asyncio.CancelledError:
            self._finish(error="cancelled")
            self.logger.warning("Catalog sync cancelled")
            raise
        except Exception as e:
            self._finish(error=f"{type(e).__name__}: {e}")
            self.logger.exception(f"Catalog sync failed: {e}")
            return None
        self._finish(synced=synced)
        return synced

    def _finish(self, synced: Optional[int] = None, error: Optional[str] = None):
        self._status.running = False
        self._status.finished_at = datetime.now(timezone.utc)
        self._status.products_synced = synced
        self._status.error = error

    async def shutdown(self):
        """Cancel an in-flight run and wait for it to settle"""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        if self._status.running:
            # cancelled before the run started
            self._finish(error="cancelled")
