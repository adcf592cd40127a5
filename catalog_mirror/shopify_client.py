"""
Remote Catalog Client - Shopify admin REST surface

One instance is built at process start from ShopifyConfig and shared by every
component. All calls authenticate with the API key/password pair (HTTP basic
auth) and are bounded by the configured timeout. Read-only calls retry
UpstreamUnavailable with exponential backoff; mutations are never retried.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import ShopifyConfig
from .data_models import (
    InventoryLevel, RemoteProduct, RemoteVariant, parse_remote_product, parse_remote_variant
)
from .errors import (
    ConfigError, NotFound, UpstreamAuthError, UpstreamUnavailable, ValidationError
)

logger = logging.getLogger(__name__)


def normalize_price(value: Any) -> str:
    """Format a caller-supplied price as a two-decimal string.

    Amounts with more than two significant decimals are rejected, never rounded.
    """
    if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        raise ValidationError("newPrice is required")
    try:
        price = Decimal(str(value).strip())
        if not price.is_finite() or price < 0:
            raise ValidationError(f"newPrice is not a valid amount: {value!r}")
        cents = price.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError(f"newPrice is not a valid amount: {value!r}")
    if cents != price:
        raise ValidationError(f"newPrice has more than two decimals: {value!r}")
    return str(cents)


def _wire_id(value: str):
    """Numeric ids go over the wire as integers"""
    return int(value) if isinstance(value, str) and value.isdigit() else value


def chunked(items: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ShopifyCatalogClient:
    """Authenticated client for products, variants and inventory levels"""

    def __init__(self, config: ShopifyConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        base_url = f"{config.store_url.rstrip('/')}/admin/api/{config.api_version}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(config.api_key, config.api_password),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=config.timeout_seconds,
            transport=transport,
        )
        logger.info(f"ShopifyCatalogClient initialized: base_url={base_url}")

    async def close(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, params: Optional[Dict] = None,
                       json: Optional[Dict] = None) -> httpx.Response:
        if not self.config.has_credentials:
            raise ConfigError("Shopify store URL and API credentials must be configured")

        logger.debug(f"shopify request method={method} path={path} params={params}")
        try:
            resp = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Timed out calling Shopify {method} {path}") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailable(f"Could not reach Shopify {method} {path}: {e}") from e

        logger.info(f"shopify response status={resp.status_code} method={method} path={path}")
        status = resp.status_code
        if status < 400:
            return resp

        detail = {"upstreamStatus": status, "upstreamBody": resp.text[:500]}
        if status in (401, 403):
            raise UpstreamAuthError("Shopify rejected the API credentials", detail)
        if status == 404:
            raise NotFound(f"Shopify resource not found: {path}", detail)
        if status in (400, 422):
            raise ValidationError("Shopify rejected the request", detail)
        raise UpstreamUnavailable(f"Shopify returned HTTP {status}", detail)

    async def _get(self, path: str, params: Optional[Dict] = None) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.read_retries),
            wait=wait_exponential(multiplier=self.config.retry_backoff_seconds, max=10),
            retry=retry_if_exception_type(UpstreamUnavailable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._request("GET", path, params=params)

    @staticmethod
    def _next_cursor(resp: httpx.Response) -> Optional[str]:
        next_link = resp.links.get("next")
        if not next_link or not next_link.get("url"):
            return None
        return httpx.URL(next_link["url"]).params.get("page_info")

    async def list_products_page(self, cursor: Optional[str] = None) -> Tuple[List[RemoteProduct], Optional[str]]:
        """Fetch one page of products and the cursor for the next one"""
        params: Dict[str, Any] = {"limit": self.config.page_size}
        if cursor:
            params["page_info"] = cursor
        resp = await self._get("/products.json", params=params)
        products = [parse_remote_product(p) for p in resp.json().get("products") or []]
        return products, self._next_cursor(resp)

    async def get_product(self, product_id: str) -> RemoteProduct:
        resp = await self._get(f"/products/{product_id}.json")
        payload = resp.json().get("product")
        if not payload:
            raise NotFound(f"Product {product_id} not found")
        return parse_remote_product(payload)

    async def get_variant(self, variant_id: str) -> RemoteVariant:
        resp = await self._get(f"/variants/{variant_id}.json")
        payload = resp.json().get("variant")
        if not payload:
            raise NotFound(f"Variant {variant_id} not found")
        return parse_remote_variant(payload)

    async def update_variant_price(self, variant_id: str, new_price: Any) -> RemoteVariant:
        """Set a variant's price; returns the variant as updated upstream"""
        if not variant_id:
            raise ValidationError("variantId is required")
        price = normalize_price(new_price)
        body = {"variant": {"id": _wire_id(variant_id), "price": price}}
        resp = await self._request("PUT", f"/variants/{variant_id}.json", json=body)
        payload = resp.json().get("variant") or {}
        variant = parse_remote_variant(payload)
        if variant.id is None:
            variant.id = variant_id
        if variant.price is None:
            variant.price = price
        return variant

    async def set_inventory_level(self, inventory_item_id: str, location_id: Optional[str],
                                  quantity: int) -> InventoryLevel:
        """Absolute set of available quantity at one location"""
        if not location_id:
            raise ConfigError("No inventory location is configured")
        body = {
            "location_id": _wire_id(location_id),
            "inventory_item_id": _wire_id(inventory_item_id),
            "available": int(quantity),
        }
        resp = await self._request("POST", "/inventory_levels/set.json", json=body)
        payload = resp.json().get("inventory_level") or {}
        available = payload.get("available")
        return InventoryLevel(
            inventory_item_id=inventory_item_id,
            location_id=location_id,
            available=int(quantity if available is None else available),
        )

    async def get_inventory_levels(self, inventory_item_ids: List[str], location_id: Optional[str]) -> Dict[str, int]:
        """Map inventory item id -> available at one location.

        Ids are sent in sequential chunks no larger than the platform's batch
        ceiling and merged; a duplicate id keeps the last value seen.
        """
        if not location_id:
            raise ConfigError("No inventory location is configured")
        levels: Dict[str, int] = {}
        for chunk in chunked(list(inventory_item_ids), self.config.inventory_batch_size):
            params = {
                "inventory_item_ids": ",".join(chunk),
                "location_ids": location_id,
                "limit": 250,
            }
            resp = await self._get("/inventory_levels.json", params=params)
            for level in resp.json().get("inventory_levels") or []:
                item_id = level.get("inventory_item_id")
                if item_id is None:
                    continue
                levels[str(item_id)] = int(level.get("available") or 0)
        return levels

    async def delete_product(self, product_id: str):
        await self._request("DELETE", f"/products/{product_id}.json")
        logger.info(f"Deleted product {product_id} on Shopify")

    async def delete_variant(self, variant_id: str) -> str:
        """Delete a variant; returns the id of the product that owned it"""
        variant = await self.get_variant(variant_id)
        if not variant.product_id:
            raise NotFound(f"Variant {variant_id} has no owning product")
        await self._request("DELETE", f"/products/{variant.product_id}/variants/{variant_id}.json")
        logger.info(f"Deleted variant {variant_id} of product {variant.product_id} on Shopify")
        return variant.product_id
