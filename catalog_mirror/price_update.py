"""
Price/Stock Update Workflow

Steps, in order:

1. validate       - variant, price and inventory location must be present
2. price_update   - set the variant price remotely
3. resolve_inventory_item - find the variant's inventory item
4. inventory_lock - force available stock at the location to the locked quantity
5. local_persist  - write the new price and change stamp to the local mirror

The steps are not transactional. A failure in step 2 leaves everything
untouched. A failure in step 3 or 4 raises PartialWorkflowFailure: the remote
price already changed and is not rolled back. A failure in step 5 still
reports success, with a warning, since only the local mirror is stale.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .database import ProductRepository
from .errors import (
    CatalogError, ConfigError, NotFound, PartialWorkflowFailure, UpstreamUnavailable, ValidationError
)
from .shopify_client import ShopifyCatalogClient, normalize_price

STEP_VALIDATE = "validate"
STEP_PRICE_UPDATE = "price_update"
STEP_RESOLVE_INVENTORY_ITEM = "resolve_inventory_item"
STEP_INVENTORY_LOCK = "inventory_lock"
STEP_LOCAL_PERSIST = "local_persist"


@dataclass
class PriceUpdateRequest:
    variant_id: Optional[str]
    new_price: Any
    actor_id: str
    remote_product_id: Optional[str] = None


@dataclass
class PriceUpdateResult:
    product_id: Optional[str]
    variant_id: str
    price: str
    inventory_item_id: str
    available: int
    local_updated: bool
    changed_at: datetime
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "price": self.price,
            "inventoryItemId": self.inventory_item_id,
            "available": self.available,
            "localUpdated": self.local_updated,
            "changedAt": self.changed_at.isoformat(),
            "warnings": list(self.warnings),
        }


class PriceUpdateWorkflow:
    """Updates a variant's price and locks its stock, then mirrors locally"""

    def __init__(self, client: ShopifyCatalogClient, repository: ProductRepository,
                 location_id: Optional[str], locked_quantity: int = 1,
                 serialize_per_variant: bool = True):
        self.client = client
        self.repository = repository
        self.location_id = location_id
        self.locked_quantity = locked_quantity
        self.serialize_per_variant = serialize_per_variant
        self.logger = logging.getLogger(__name__)
        # variant id -> [lock, tasks holding or waiting on it]
        self._locks: Dict[str, list] = {}

    async def run(self, request: PriceUpdateRequest) -> PriceUpdateResult:
        price = self._validate(request)
        if not self.serialize_per_variant:
            return await self._run_steps(request, price)
        # Serialises updates to the same variant within this process only
        async with self._variant_lock(request.variant_id):
            return await self._run_steps(request, price)

    @asynccontextmanager
    async def _variant_lock(self, variant_id: str):
        entry = self._locks.setdefault(variant_id, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[variant_id]

    def _validate(self, request: PriceUpdateRequest) -> str:
        if not request.variant_id:
            raise ValidationError("variantId is required")
        price = normalize_price(request.new_price)
        if not self.location_id:
            raise ConfigError("No inventory location is configured")
        return price

    async def _run_steps(self, request: PriceUpdateRequest, price: str) -> PriceUpdateResult:
        variant_id = request.variant_id
        step = STEP_PRICE_UPDATE
        self.logger.info(f"Price update started variant_id={variant_id} price={price} actor={request.actor_id}")

        # Any failure here propagates as-is: nothing has been mutated yet
        variant = await self.client.update_variant_price(variant_id, price)
        self.logger.info(f"Remote price updated variant_id={variant_id} price={variant.price}")

        try:
            step = STEP_RESOLVE_INVENTORY_ITEM
            inventory_item_id = await self._resolve_inventory_item(variant_id, variant.inventory_item_id)
            # the platform's owner wins over the id the caller addressed
            product_id = variant.product_id or request.remote_product_id
            if request.remote_product_id and product_id != request.remote_product_id:
                self.logger.warning(
                    f"Variant {variant_id} belongs to product {product_id}, "
                    f"not {request.remote_product_id}"
                )

            step = STEP_INVENTORY_LOCK
            level = await self._lock_inventory(variant_id, inventory_item_id)

            step = STEP_LOCAL_PERSIST
            changed_at = datetime.now(timezone.utc)
            warnings = []
            local_updated = False
            try:
                local_updated = await self._persist(product_id, variant_id, price, request.actor_id, changed_at)
            except CatalogError as e:
                self.logger.error(f"Local mirror not updated step={step} variant_id={variant_id}: {e.message}")
                warnings.append(f"local mirror not updated: {e.describe()}")
            if not local_updated and not warnings:
                warnings.append(f"local mirror not updated: variant {variant_id} not found in product {product_id}")
        except asyncio.CancelledError:
            self.logger.error(
                f"Price update cancelled after remote price change step={step} variant_id={variant_id}"
            )
            raise

        self.logger.info(f"Price update complete variant_id={variant_id} available={level.available}")
        return PriceUpdateResult(
            product_id=product_id,
            variant_id=variant_id,
            price=price,
            inventory_item_id=inventory_item_id,
            available=level.available,
            local_updated=local_updated,
            changed_at=changed_at,
            warnings=warnings,
        )

    async def _resolve_inventory_item(self, variant_id: str, inventory_item_id: Optional[str]) -> str:
        if inventory_item_id:
            return inventory_item_id
        try:
            variant = await self.client.get_variant(variant_id)
            if not variant.inventory_item_id:
                raise NotFound(f"Variant {variant_id} has no inventory item")
        except Exception as e:
            raise self._partial_failure(
                STEP_RESOLVE_INVENTORY_ITEM,
                "Price updated, inventory link not found",
                e,
                {"variantId": variant_id},
            ) from e
        return variant.inventory_item_id

    async def _lock_inventory(self, variant_id: str, inventory_item_id: str):
        try:
            return await self.client.set_inventory_level(
                inventory_item_id, self.location_id, self.locked_quantity
            )
        except Exception as e:
            raise self._partial_failure(
                STEP_INVENTORY_LOCK,
                "Price updated remotely, stock lock failed",
                e,
                {"variantId": variant_id, "inventoryItemId": inventory_item_id},
            ) from e

    def _partial_failure(self, step: str, message: str, error: Exception,
                         details: Dict[str, Any]) -> PartialWorkflowFailure:
        if isinstance(error, CatalogError):
            cause = error
            self.logger.error(f"Partial failure step={step} variant_id={details['variantId']}: {error.message}")
        else:
            # malformed upstream response rather than a mapped HTTP error
            cause = UpstreamUnavailable(f"Unexpected Shopify response: {type(error).__name__}: {error}")
            self.logger.exception(f"Partial failure step={step} variant_id={details['variantId']}")
        return PartialWorkflowFailure(step, message, cause=cause, details=details)

    async def _persist(self, product_id: Optional[str], variant_id: str, price: str,
                       actor_id: str, changed_at: datetime) -> bool:
        if product_id and self.repository.record_price_change(product_id, variant_id, price, actor_id, changed_at):
            return True

        # No local record holds this variant: mirror the canonical product first
        if not product_id:
            product_id = (await self.client.get_variant(variant_id)).product_id
            if not product_id:
                raise NotFound(f"Variant {variant_id} has no owning product")
        product = await self.client.get_product(product_id)
        if product.find_variant(variant_id) is None:
            return False
        self.repository.upsert_product(product)
        return self.repository.record_price_change(product.id, variant_id, price, actor_id, changed_at)
