"""
Inventory Resolver - live per-variant stock at the configured location
"""

import logging
from typing import List, Optional

from .data_models import RemoteProduct, VariantStock
from .errors import ConfigError
from .shopify_client import ShopifyCatalogClient


class InventoryResolver:
    """Produces stock snapshots for a product's variants.

    Levels are read live on every call and never cached.
    """

    def __init__(self, client: ShopifyCatalogClient, location_id: Optional[str]):
        self.client = client
        self.location_id = location_id
        self.logger = logging.getLogger(__name__)

    def _require_location(self):
        if not self.location_id:
            raise ConfigError("No inventory location is configured")

    async def resolve_availability(self, remote_product_id: str) -> List[VariantStock]:
        """Fetch the product and resolve stock for each of its variants"""
        self._require_location()
        product = await self.client.get_product(remote_product_id)
        return await self.resolve_for_product(product)

    async def resolve_for_product(self, product: RemoteProduct) -> List[VariantStock]:
        self._require_location()
        item_ids = [v.inventory_item_id for v in product.variants if v.inventory_item_id]
        levels = {}
        if item_ids:
            levels = await self.client.get_inventory_levels(item_ids, self.location_id)

        stock = []
        for variant in product.variants:
            # No level reported means no stock data, read as zero
            available = levels.get(variant.inventory_item_id, 0) if variant.inventory_item_id else 0
            stock.append(VariantStock(
                variant_id=variant.id,
                inventory_item_id=variant.inventory_item_id,
                available=available,
            ))
        self.logger.debug(f"Resolved stock for {len(stock)} variants of product {product.id}")
        return stock
