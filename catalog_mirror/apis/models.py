"""
Request and response bodies for the products API
"""
from pydantic import BaseModel
from typing import List, Optional, Union


class PriceUpdateBody(BaseModel):
    """Body of PUT /api/products/{id}; presence is checked by the workflow"""
    variantId: Optional[Union[str, int]] = None
    newPrice: Optional[Union[str, int, float]] = None


class VariantResponse(BaseModel):
    id: str
    price: Optional[str] = None
    option1: Optional[str] = None
    inventoryItemId: Optional[str] = None
    available: Optional[int] = None


class ProductResponse(BaseModel):
    id: Optional[str] = None
    shopifyId: str
    title: str
    variants: List[VariantResponse]
    changedBy: Optional[str] = None
    changedAt: Optional[str] = None
    source: str = "local"


class ProductPage(BaseModel):
    items: List[ProductResponse]
    page: int
    limit: int
    total: int
    pages: int


class VariantStockResponse(BaseModel):
    variantId: str
    inventoryItemId: Optional[str] = None
    available: int


class InventoryResponse(BaseModel):
    productId: str
    locationId: str
    variants: List[VariantStockResponse]


class PriceUpdateResponse(BaseModel):
    success: bool
    productId: Optional[str] = None
    variantId: str
    price: str
    inventoryItemId: str
    available: int
    localUpdated: bool
    changedAt: str
    warnings: List[str] = []


class SyncStatusResponse(BaseModel):
    running: bool
    startedAt: Optional[str] = None
    finishedAt: Optional[str] = None
    productsSynced: Optional[int] = None
    error: Optional[str] = None


class DeleteResponse(BaseModel):
    deleted: bool
    productId: Optional[str] = None
    variantId: Optional[str] = None
    localRecordKept: bool = True
