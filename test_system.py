"""
Test Script for the Catalog Mirror service: configuration, models and local store
"""

import unittest
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone

import mongomock
import pydantic

from catalog_mirror.config import load_config
from catalog_mirror.data_models import (
    RemoteProduct, document_to_record, parse_remote_product, record_to_response
)
from catalog_mirror.database import ProductRepository, create_product_indexes
from catalog_mirror.errors import NotFound, PartialWorkflowFailure, UpstreamUnavailable, ValidationError
from fake_shopify import make_product


def new_repository() -> ProductRepository:
    collection = mongomock.MongoClient()["test_catalog_mirror"]["products"]
    create_product_indexes(collection, logging.getLogger(__name__))
    return ProductRepository(collection)


def remote(product_id: str, title: str, *variants) -> RemoteProduct:
    return parse_remote_product(make_product(product_id, title, list(variants)))


class TestConfiguration(unittest.TestCase):
    """Configuration loading"""

    def setUp(self):
        logging.basicConfig(level=logging.INFO)
        self.logger = logging.getLogger(__name__)

        self.config_content = """
shopify:
  store_url: "https://demo.myshopify.com"
  api_key: "file-key"
  api_password: "file-secret"
  api_version: "2024-07"
  location_id: 123456
  inventory_batch_size: 25

database:
  mongodb:
    uri: "mongodb://localhost:27017/"
    database: "test_catalog_mirror"

pricing:
  locked_stock_quantity: 3

logging:
  level: "DEBUG"
  file: "logs/test.log"
"""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, "test_config.yaml")
        with open(self.config_path, 'w') as f:
            f.write(self.config_content)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_configuration_loading(self):
        """Test configuration loading"""
        self.logger.info("Testing configuration loading...")

        config = load_config(self.config_path, environ={})

        self.assertEqual(config.shopify.store_url, "https://demo.myshopify.com")
        self.assertEqual(config.shopify.api_version, "2024-07")
        self.assertEqual(config.shopify.location_id, "123456")
        self.assertEqual(config.shopify.inventory_batch_size, 25)
        self.assertEqual(config.shopify.page_size, 250)
        self.assertEqual(config.database.mongodb.database, "test_catalog_mirror")
        self.assertEqual(config.database.mongodb.collections.products, "products")
        self.assertEqual(config.pricing.locked_stock_quantity, 3)
        self.assertTrue(config.pricing.serialize_per_variant)
        self.assertTrue(config.sync.on_startup)

    def test_environment_overrides(self):
        environ = {
            "SHOPIFY_API_KEY": "env-key",
            "SHOPIFY_API_PASSWORD": "env-secret",
            "SHOPIFY_LOCATION_ID": "987",
            "MONGODB_URI": "mongodb://mongo:27017/",
            "LOG_LEVEL": "WARNING",
        }
        config = load_config(self.config_path, environ=environ)

        self.assertEqual(config.shopify.api_key, "env-key")
        self.assertEqual(config.shopify.api_password, "env-secret")
        self.assertEqual(config.shopify.location_id, "987")
        self.assertEqual(config.database.mongodb.uri, "mongodb://mongo:27017/")
        self.assertEqual(config.logging.level, "WARNING")
        self.assertTrue(config.shopify.has_credentials)

    def test_blank_location_is_unconfigured(self):
        with open(self.config_path, 'w') as f:
            f.write('shopify:\n  location_id: ""\n')
        config = load_config(self.config_path, environ={})
        self.assertIsNone(config.shopify.location_id)
        self.assertFalse(config.shopify.has_credentials)

    def test_missing_file_raises(self):
        with self.assertRaises(FileNotFoundError):
            load_config(os.path.join(self.temp_dir, "missing.yaml"), environ={})

    def test_batch_size_above_platform_ceiling_rejected(self):
        with open(self.config_path, 'w') as f:
            f.write('shopify:\n  inventory_batch_size: 50\n')
        with self.assertRaises(pydantic.ValidationError):
            load_config(self.config_path, environ={})


class TestDataModels(unittest.TestCase):

    def test_parse_remote_product(self):
        """Test platform payload parsing; ids become strings"""
        product = parse_remote_product({
            "id": 632910392,
            "title": "IPod Nano",
            "variants": [
                {"id": 808950810, "product_id": 632910392, "price": "199.00",
                 "inventory_item_id": 808950810, "option1": "Pink", "sku": "IPOD2008PINK"},
                {"id": 49148385, "product_id": 632910392, "price": "199.00",
                 "inventory_item_id": None, "option1": "Red"},
            ],
        })

        self.assertEqual(product.id, "632910392")
        self.assertEqual(product.title, "IPod Nano")
        self.assertEqual([v.id for v in product.variants], ["808950810", "49148385"])
        self.assertEqual(product.variants[0].inventory_item_id, "808950810")
        self.assertEqual(product.variants[0].product_id, "632910392")
        self.assertIsNone(product.variants[1].inventory_item_id)
        self.assertEqual(product.find_variant("49148385").option1, "Red")
        self.assertIsNone(product.find_variant("missing"))

    def test_document_round_trip_marks_naive_times_utc(self):
        record = document_to_record({
            "_id": "abc",
            "shopifyId": "P1",
            "title": "Shirt",
            "variants": [{"id": "V1", "price": "10.00", "option1": "S"}],
            "changedBy": "user-1",
            "changedAt": datetime(2024, 5, 1, 12, 0, 0),
        })
        self.assertEqual(record.changed_at.tzinfo, timezone.utc)

        body = record_to_response(record)
        self.assertEqual(body["shopifyId"], "P1")
        self.assertEqual(body["variants"], [{"id": "V1", "price": "10.00", "option1": "S"}])
        self.assertEqual(body["changedAt"], "2024-05-01T12:00:00+00:00")


class TestErrors(unittest.TestCase):

    def test_error_body(self):
        err = NotFound("Product P9 not found", {"upstreamStatus": 404})
        self.assertEqual(err.status_code, 404)
        self.assertEqual(err.to_dict(), {
            "error": "not_found", "message": "Product P9 not found", "upstreamStatus": 404
        })
        self.assertEqual(ValidationError("bad").status_code, 400)

    def test_describe(self):
        self.assertEqual(NotFound("Product P9 not found").describe(), "not_found: Product P9 not found")

    def test_partial_failure_body_never_claims_success(self):
        cause = UpstreamUnavailable("Shopify returned HTTP 503")
        err = PartialWorkflowFailure("inventory_lock", "Price updated remotely, stock lock failed", cause=cause)
        body = err.to_dict()

        self.assertEqual(err.status_code, 500)
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "partial_workflow_failure")
        self.assertEqual(body["step"], "inventory_lock")
        self.assertTrue(body["priceUpdated"])
        self.assertEqual(body["cause"]["error"], "upstream_unavailable")


class TestProductRepository(unittest.TestCase):
    """Local Catalog Store behaviour against mongomock"""

    def setUp(self):
        self.repo = new_repository()

    def test_upsert_many_is_idempotent(self):
        products = [
            remote("P1", "Shirt", {"id": "V1", "price": "10.00", "inventory_item_id": "I1", "option1": "S"}),
            remote("P2", "Hat", {"id": "V2", "price": "5.00", "inventory_item_id": "I2", "option1": "One"}),
        ]
        self.assertEqual(self.repo.upsert_many(products), 2)
        first = list(self.repo.collection.find({}, {"_id": 0}).sort("shopifyId", 1))

        self.repo.upsert_many(products)
        second = list(self.repo.collection.find({}, {"_id": 0}).sort("shopifyId", 1))

        self.assertEqual(first, second)
        self.assertEqual(self.repo.collection.count_documents({}), 2)
        self.assertNotIn("changedBy", first[0])

    def test_mirror_keeps_change_stamp(self):
        product = remote("P1", "Shirt", {"id": "V1", "price": "10.00", "inventory_item_id": "I1"})
        self.repo.upsert_many([product])
        stamp = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.assertTrue(self.repo.record_price_change("P1", "V1", "12.50", "user-1", stamp))

        renamed = remote("P1", "Shirt v2", {"id": "V1", "price": "12.50", "inventory_item_id": "I1"})
        self.repo.upsert_many([renamed])

        record = self.repo.get_product("P1")
        self.assertEqual(record.title, "Shirt v2")
        self.assertEqual(record.changed_by, "user-1")
        self.assertEqual(record.changed_at, stamp)

    def test_record_price_change_targets_one_variant(self):
        self.repo.upsert_product(remote(
            "P1", "Shirt",
            {"id": "V1", "price": "10.00", "option1": "S"},
            {"id": "V2", "price": "11.00", "option1": "M"},
        ))
        self.assertTrue(self.repo.record_price_change("P1", "V2", "15.00", "user-2"))

        record = self.repo.get_product("P1")
        self.assertEqual([v.price for v in record.variants], ["10.00", "15.00"])
        self.assertEqual(record.changed_by, "user-2")
        self.assertIsNotNone(record.changed_at)

    def test_record_price_change_without_record(self):
        self.assertFalse(self.repo.record_price_change("P404", "V1", "1.00", "user-1"))

    def test_get_product_by_local_or_remote_id(self):
        stored = self.repo.upsert_product(remote("P1", "Shirt", {"id": "V1", "price": "10.00"}))

        self.assertEqual(self.repo.get_product(stored.local_id).shopify_id, "P1")
        self.assertEqual(self.repo.get_product("P1").local_id, stored.local_id)
        self.assertIsNone(self.repo.get_product("P2"))

    def test_list_products_filters(self):
        self.repo.upsert_many([
            remote("P1", "Linen Shirt", {"id": "V1", "price": "10.00", "option1": "Blue"}),
            remote("P2", "Wool Hat", {"id": "V2", "price": "5.00", "option1": "Grey"}),
            remote("P3", "Cotton Shirt", {"id": "V3", "price": "7.00", "option1": "White"}),
        ])
        self.repo.record_price_change("P2", "V2", "6.00", "user-1")

        records, total = self.repo.list_products(search="shirt")
        self.assertEqual(total, 2)
        self.assertEqual({r.shopify_id for r in records}, {"P1", "P3"})

        records, total = self.repo.list_products(search="grey")
        self.assertEqual([r.shopify_id for r in records], ["P2"])

        records, total = self.repo.list_products(updated_only=True)
        self.assertEqual(total, 1)
        self.assertEqual(records[0].shopify_id, "P2")

        records, total = self.repo.list_products(page=2, limit=2)
        self.assertEqual(total, 3)
        self.assertEqual(len(records), 1)

    def test_search_is_literal(self):
        self.repo.upsert_many([remote("P1", "Shirt (XL)", {"id": "V1", "price": "1.00"})])
        records, total = self.repo.list_products(search="(XL)")
        self.assertEqual(total, 1)
        records, total = self.repo.list_products(search=".*")
        self.assertEqual(total, 0)


if __name__ == "__main__":
    unittest.main()
