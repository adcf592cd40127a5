"""
Data Models for the Catalog Mirror service
"""

from datetime import datetime, timezone
from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field, asdict


def _as_str_id(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class RemoteVariant:
    """A sellable variant as reported by the remote platform"""
    id: str
    price: Optional[str]
    inventory_item_id: Optional[str] = None
    product_id: Optional[str] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None


@dataclass
class RemoteProduct:
    """A product as reported by the remote platform (source of truth)"""
    id: str
    title: str
    variants: List[RemoteVariant] = field(default_factory=list)

    def find_variant(self, variant_id: str) -> Optional[RemoteVariant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None


@dataclass
class VariantSnapshot:
    """Denormalized variant fields kept in the local mirror"""
    id: str
    price: Optional[str]
    option1: Optional[str] = None


@dataclass
class LocalProductRecord:
    """A mirrored product owned by this system.

    `changed_by` stays None until the price/stock workflow touches the record.
    """
    shopify_id: str
    title: str
    variants: List[VariantSnapshot] = field(default_factory=list)
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None
    local_id: Optional[str] = None


@dataclass
class InventoryLevel:
    """Available quantity of one inventory item at one location"""
    inventory_item_id: str
    location_id: Optional[str]
    available: int


@dataclass
class VariantStock:
    variant_id: str
    inventory_item_id: Optional[str]
    available: int


class MongoDBCollections:
    """MongoDB collection names and schemas"""

    PRODUCTS = "products"

    INDEXES = {
        PRODUCTS: [
            ([("shopifyId", 1)], {"unique": True}),
            ([("changedAt", -1)], {}),
            ([("title", 1)], {}),
        ]
    }


def parse_remote_variant(payload: Dict[str, Any]) -> RemoteVariant:
    """Convert a platform variant payload to RemoteVariant"""
    return RemoteVariant(
        id=_as_str_id(payload.get('id')),
        price=payload.get('price'),
        inventory_item_id=_as_str_id(payload.get('inventory_item_id')),
        product_id=_as_str_id(payload.get('product_id')),
        title=payload.get('title'),
        sku=payload.get('sku'),
        option1=payload.get('option1'),
        option2=payload.get('option2'),
        option3=payload.get('option3'),
    )


def parse_remote_product(payload: Dict[str, Any]) -> RemoteProduct:
    """Convert a platform product payload to RemoteProduct"""
    return RemoteProduct(
        id=_as_str_id(payload.get('id')),
        title=payload.get('title') or "",
        variants=[parse_remote_variant(v) for v in payload.get('variants') or []],
    )


def snapshot_variants(product: RemoteProduct) -> List[VariantSnapshot]:
    return [VariantSnapshot(id=v.id, price=v.price, option1=v.option1) for v in product.variants]


def create_mirror_fields(product: RemoteProduct) -> Dict:
    """Fields overwritten on every mirror of a remote product.

    changedBy/changedAt are deliberately absent so that syncing never touches
    local mutation history.
    """
    return {
        'shopifyId': product.id,
        'title': product.title,
        'variants': [asdict(v) for v in snapshot_variants(product)],
    }


def document_to_record(doc: Dict) -> LocalProductRecord:
    """Convert MongoDB document to LocalProductRecord"""
    changed_at = doc.get('changedAt')
    if changed_at is not None and changed_at.tzinfo is None:
        # stored as UTC; naive unless the client is tz_aware
        changed_at = changed_at.replace(tzinfo=timezone.utc)
    return LocalProductRecord(
        shopify_id=doc['shopifyId'],
        title=doc.get('title') or "",
        variants=[
            VariantSnapshot(id=str(v.get('id')), price=v.get('price'), option1=v.get('option1'))
            for v in doc.get('variants') or []
        ],
        changed_by=doc.get('changedBy'),
        changed_at=changed_at,
        local_id=str(doc['_id']) if doc.get('_id') is not None else None,
    )


def record_to_response(record: LocalProductRecord) -> Dict[str, Any]:
    """Shape a LocalProductRecord for API responses"""
    return {
        'id': record.local_id,
        'shopifyId': record.shopify_id,
        'title': record.title,
        'variants': [asdict(v) for v in record.variants],
        'changedBy': record.changed_by,
        'changedAt': record.changed_at.isoformat() if record.changed_at else None,
    }
