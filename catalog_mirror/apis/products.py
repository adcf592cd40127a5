"""
Products API - local mirror reads, live stock, price updates and deletes

Every read consults the local mirror first and falls back to the remote
platform, mirroring what it finds.
"""
import math
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ..data_models import VariantStock, record_to_response
from ..price_update import PriceUpdateRequest
from ..services import CatalogServices
from .dependencies import get_actor_id, get_services, parse_flag
from .models import (
    DeleteResponse, InventoryResponse, PriceUpdateBody, PriceUpdateResponse,
    ProductPage, ProductResponse, SyncStatusResponse
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _merge_stock(product: Dict, stock: List[VariantStock]) -> Dict:
    by_variant = {s.variant_id: s for s in stock}
    for variant in product['variants']:
        entry = by_variant.get(variant['id'])
        variant['inventoryItemId'] = entry.inventory_item_id if entry else None
        variant['available'] = entry.available if entry else 0
    return product


def _remote_id_for(services: CatalogServices, product_id: str) -> str:
    record = services.repository.get_product(product_id)
    return record.shopify_id if record else product_id


@router.get("", response_model=ProductPage)
async def list_products(
    updated_only: Optional[str] = Query(default=None, alias="updatedOnly"),
    page: int = Query(default=1),
    limit: Optional[int] = Query(default=None),
    q: Optional[str] = Query(default=None),
    services: CatalogServices = Depends(get_services),
):
    """Page through the local mirror"""
    api_config = services.config.api
    page = max(page, 1)
    limit = min(max(limit or api_config.default_page_size, 1), api_config.max_page_size)
    records, total = services.repository.list_products(
        updated_only=parse_flag(updated_only),
        search=q.strip() if q and q.strip() else None,
        page=page,
        limit=limit,
    )
    return {
        "items": [record_to_response(r) for r in records],
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/sync", response_model=SyncStatusResponse)
async def get_sync_status(services: CatalogServices = Depends(get_services)):
    return services.sync_runner.status().to_dict()


@router.post("/sync", response_model=SyncStatusResponse, status_code=202)
async def trigger_sync(services: CatalogServices = Depends(get_services)):
    """Start a catalog sync unless one is already running"""
    services.sync_runner.trigger()
    return services.sync_runner.status().to_dict()


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    include_stock: Optional[str] = Query(default=None, alias="includeStock"),
    services: CatalogServices = Depends(get_services),
):
    """Single product by local id or remote id, optionally with live stock"""
    remote = None
    source = "local"
    record = services.repository.get_product(product_id)
    if record is None:
        remote = await services.client.get_product(product_id)
        record = services.repository.upsert_product(remote)
        source = "remote"
        logger.info(f"Product {product_id} missing locally, mirrored from Shopify")

    body = record_to_response(record)
    body["source"] = source
    if parse_flag(include_stock):
        if remote is not None:
            stock = await services.inventory.resolve_for_product(remote)
        else:
            stock = await services.inventory.resolve_availability(record.shopify_id)
        _merge_stock(body, stock)
    return body


@router.get("/{product_id}/inventory", response_model=InventoryResponse)
async def get_product_inventory(product_id: str, services: CatalogServices = Depends(get_services)):
    """Live stock for each variant at the configured location"""
    remote_id = _remote_id_for(services, product_id)
    stock = await services.inventory.resolve_availability(remote_id)
    return {
        "productId": remote_id,
        "locationId": services.inventory.location_id,
        "variants": [
            {"variantId": s.variant_id, "inventoryItemId": s.inventory_item_id, "available": s.available}
            for s in stock
        ],
    }


@router.put("/{product_id}", response_model=PriceUpdateResponse)
async def update_price(
    product_id: str,
    body: PriceUpdateBody,
    actor_id: str = Depends(get_actor_id),
    services: CatalogServices = Depends(get_services),
):
    """Update a variant's price and lock its stock"""
    remote_id = _remote_id_for(services, product_id)
    result = await services.price_update.run(PriceUpdateRequest(
        variant_id=str(body.variantId) if body.variantId is not None else None,
        new_price=body.newPrice,
        actor_id=actor_id,
        remote_product_id=remote_id,
    ))
    return result.to_dict()


@router.delete("/variants/{variant_id}", response_model=DeleteResponse)
async def delete_variant(variant_id: str, services: CatalogServices = Depends(get_services)):
    """Delete a variant on the remote platform; the local mirror is not pruned"""
    owner_id = await services.client.delete_variant(variant_id)
    return {"deleted": True, "productId": owner_id, "variantId": variant_id}


@router.delete("/{product_id}", response_model=DeleteResponse)
async def delete_product(product_id: str, services: CatalogServices = Depends(get_services)):
    """Delete a product on the remote platform; the local mirror is not pruned"""
    remote_id = _remote_id_for(services, product_id)
    await services.client.delete_product(remote_id)
    return {"deleted": True, "productId": remote_id}
