"""
Long-lived service objects shared by every request
"""

from dataclasses import dataclass
from typing import Optional

from .config import AppConfig
from .database import DatabaseManager, ProductRepository
from .inventory import InventoryResolver
from .price_update import PriceUpdateWorkflow
from .shopify_client import ShopifyCatalogClient
from .synchronizer import CatalogSynchronizer, SyncRunner


@dataclass
class CatalogServices:
    config: AppConfig
    client: ShopifyCatalogClient
    repository: ProductRepository
    inventory: InventoryResolver
    synchronizer: CatalogSynchronizer
    sync_runner: SyncRunner
    price_update: PriceUpdateWorkflow
    db_manager: Optional[DatabaseManager] = None

    async def close(self):
        await self.sync_runner.shutdown()
        await self.client.close()
        if self.db_manager is not None:
            self.db_manager.close_connections()


def build_services(config: AppConfig, client: ShopifyCatalogClient, repository: ProductRepository,
                   db_manager: Optional[DatabaseManager] = None) -> CatalogServices:
    """Wire every component around one client and one repository"""
    location_id = config.shopify.location_id
    synchronizer = CatalogSynchronizer(client, repository)
    return CatalogServices(
        config=config,
        client=client,
        repository=repository,
        inventory=InventoryResolver(client, location_id),
        synchronizer=synchronizer,
        sync_runner=SyncRunner(synchronizer),
        price_update=PriceUpdateWorkflow(
            client,
            repository,
            location_id,
            locked_quantity=config.pricing.locked_stock_quantity,
            serialize_per_variant=config.pricing.serialize_per_variant,
        ),
        db_manager=db_manager,
    )
