"""
In-memory Shopify admin REST surface for tests, served through httpx.MockTransport
"""

import json
import re
from typing import Dict, List, Optional, Tuple

import httpx

from catalog_mirror.config import AppConfig, ShopifyConfig

STORE_URL = "https://shop.test"
API_VERSION = "2024-10"

PATH_PATTERN = re.compile(r"^/admin/api/[^/]+(/.*)$")


def make_product(product_id: str, title: str, variants: List[Dict]) -> Dict:
    """Platform-shaped product payload; variants are {id, price, inventory_item_id, option1}"""
    return {
        "id": product_id,
        "title": title,
        "variants": [dict(v, product_id=product_id) for v in variants],
    }


def make_config(location_id: Optional[str] = "L1", **shopify_overrides) -> AppConfig:
    shopify = dict(
        store_url=STORE_URL,
        api_key="key",
        api_password="secret",
        api_version=API_VERSION,
        location_id=location_id,
        retry_backoff_seconds=0,
    )
    shopify.update(shopify_overrides)
    config = AppConfig(shopify=ShopifyConfig(**shopify))
    config.sync.on_startup = False
    config.logging.file = None
    return config


class FakeShopify:
    """Holds catalog and inventory state and records every request"""

    def __init__(self, page_size: int = 250):
        self.page_size = page_size
        self.products: Dict[str, Dict] = {}
        self.levels: Dict[Tuple[str, str], int] = {}
        self.requests: List[httpx.Request] = []
        self.failures: List[Dict] = []
        self.hidden_levels = set()
        self.omit_inventory_item_on_update = False

    # -- setup helpers

    def add_product(self, product: Dict):
        self.products[str(product["id"])] = product

    def set_level(self, inventory_item_id: str, location_id: str, available: int):
        self.levels[(inventory_item_id, location_id)] = available

    def fail(self, method: str, path_fragment: str, status: int = 500, times: Optional[int] = None,
             skip: int = 0, content: Optional[bytes] = None):
        """Answer matching requests with `status` after letting `skip` through.

        Status 0 raises a transport error instead. `content` replaces the
        default JSON error body with raw bytes.
        """
        self.failures.append({
            "method": method, "fragment": path_fragment, "status": status, "times": times, "skip": skip,
            "content": content,
        })

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method: str, path_fragment: str = "") -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and path_fragment in r.url.path]

    def variant(self, variant_id: str) -> Optional[Dict]:
        for product in self.products.values():
            for variant in product["variants"]:
                if str(variant["id"]) == variant_id:
                    return variant
        return None

    # -- request handling

    def _injected_failure(self, request: httpx.Request) -> Optional[Dict]:
        for failure in self.failures:
            if failure["method"] != request.method or failure["fragment"] not in request.url.path:
                continue
            if failure["skip"] > 0:
                failure["skip"] -= 1
                continue
            if failure["times"] is not None:
                if failure["times"] <= 0:
                    continue
                failure["times"] -= 1
            return failure
        return None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        failure = self._injected_failure(request)
        if failure is not None:
            if failure["status"] == 0:
                raise httpx.ConnectError("connection refused", request=request)
            if failure["content"] is not None:
                return httpx.Response(failure["status"], content=failure["content"])
            return httpx.Response(failure["status"], json={"errors": "injected"})

        match = PATH_PATTERN.match(request.url.path)
        if not match:
            return httpx.Response(404, json={"errors": "Not Found"})
        path = match.group(1)
        method = request.method
        body = json.loads(request.content) if request.content else {}

        if method == "GET" and path == "/products.json":
            return self._list_products(request)
        if method == "GET" and path == "/inventory_levels.json":
            return self._inventory_levels(request)
        if method == "POST" and path == "/inventory_levels/set.json":
            return self._set_level(body)

        m = re.match(r"^/products/([^/]+)\.json$", path)
        if m:
            product = self.products.get(m.group(1))
            if product is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            if method == "GET":
                return httpx.Response(200, json={"product": product})
            if method == "DELETE":
                del self.products[m.group(1)]
                return httpx.Response(200, json={})

        m = re.match(r"^/products/([^/]+)/variants/([^/]+)\.json$", path)
        if m and method == "DELETE":
            product = self.products.get(m.group(1))
            if product is None or self.variant(m.group(2)) is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            product["variants"] = [v for v in product["variants"] if str(v["id"]) != m.group(2)]
            return httpx.Response(200, json={})

        m = re.match(r"^/variants/([^/]+)\.json$", path)
        if m:
            variant = self.variant(m.group(1))
            if variant is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            if method == "GET":
                return httpx.Response(200, json={"variant": variant})
            if method == "PUT":
                variant["price"] = body["variant"]["price"]
                payload = dict(variant)
                if self.omit_inventory_item_on_update:
                    payload.pop("inventory_item_id", None)
                return httpx.Response(200, json={"variant": payload})

        return httpx.Response(404, json={"errors": "Not Found"})

    def _list_products(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        limit = int(params.get("limit", self.page_size))
        offset = int(params.get("page_info", "0"))
        products = list(self.products.values())
        page = products[offset:offset + limit]
        headers = {}
        if offset + limit < len(products):
            next_url = f"{STORE_URL}/admin/api/{API_VERSION}/products.json?limit={limit}&page_info={offset + limit}"
            headers["Link"] = f'<{next_url}>; rel="next"'
        return httpx.Response(200, json={"products": page}, headers=headers)

    def _inventory_levels(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        item_ids = [i for i in params.get("inventory_item_ids", "").split(",") if i]
        location_id = params.get("location_ids")
        levels = [
            {"inventory_item_id": item_id, "location_id": location_id,
             "available": self.levels[(item_id, location_id)]}
            for item_id in item_ids
            if (item_id, location_id) in self.levels and item_id not in self.hidden_levels
        ]
        return httpx.Response(200, json={"inventory_levels": levels})

    def _set_level(self, body: Dict) -> httpx.Response:
        item_id = str(body["inventory_item_id"])
        location_id = str(body["location_id"])
        self.levels[(item_id, location_id)] = body["available"]
        return httpx.Response(200, json={"inventory_level": {
            "inventory_item_id": body["inventory_item_id"],
            "location_id": body["location_id"],
            "available": body["available"],
        }})
