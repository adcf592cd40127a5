"""
Tests for the Inventory Resolver and the Catalog Synchronizer
"""

import unittest

from catalog_mirror.errors import ConfigError, UpstreamUnavailable
from catalog_mirror.inventory import InventoryResolver
from catalog_mirror.shopify_client import ShopifyCatalogClient
from catalog_mirror.synchronizer import CatalogSynchronizer, SyncRunner
from fake_shopify import FakeShopify, make_config, make_product
from test_system import new_repository


class TestInventoryResolver(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.shopify = FakeShopify()
        config = make_config()
        self.client = ShopifyCatalogClient(config.shopify, transport=self.shopify.transport())
        self.resolver = InventoryResolver(self.client, "L1")

    async def asyncTearDown(self):
        await self.client.close()

    async def test_resolves_in_variant_order(self):
        self.shopify.add_product(make_product("P1", "Shirt", [
            {"id": "V3", "price": "1.00", "inventory_item_id": "I3"},
            {"id": "V1", "price": "1.00", "inventory_item_id": "I1"},
            {"id": "V2", "price": "1.00", "inventory_item_id": "I2"},
        ]))
        self.shopify.set_level("I1", "L1", 4)
        self.shopify.set_level("I2", "L1", 0)
        self.shopify.set_level("I3", "L1", 9)

        stock = await self.resolver.resolve_availability("P1")

        self.assertEqual(
            [(s.variant_id, s.inventory_item_id, s.available) for s in stock],
            [("V3", "I3", 9), ("V1", "I1", 4), ("V2", "I2", 0)],
        )
        self.assertEqual(len(self.shopify.calls("GET", "/inventory_levels.json")), 1)

    async def test_missing_level_reads_as_zero(self):
        self.shopify.add_product(make_product("P2", "Hat", [
            {"id": "V9", "price": "5.00", "inventory_item_id": "I2"},
        ]))
        self.shopify.set_level("I2", "L1", 12)
        self.shopify.hidden_levels.add("I2")

        stock = await self.resolver.resolve_availability("P2")

        self.assertEqual(len(stock), 1)
        self.assertEqual(stock[0].variant_id, "V9")
        self.assertEqual(stock[0].inventory_item_id, "I2")
        self.assertEqual(stock[0].available, 0)

    async def test_variant_without_inventory_item(self):
        self.shopify.add_product(make_product("P3", "Gift card", [
            {"id": "V1", "price": "25.00", "inventory_item_id": None},
        ]))

        stock = await self.resolver.resolve_availability("P3")

        self.assertEqual(stock[0].available, 0)
        self.assertEqual(self.shopify.calls("GET", "/inventory_levels.json"), [])

    async def test_unconfigured_location_short_circuits(self):
        resolver = InventoryResolver(self.client, None)
        with self.assertRaises(ConfigError):
            await resolver.resolve_availability("P1")
        self.assertEqual(self.shopify.requests, [])

    async def test_large_products_are_chunked(self):
        variants = [
            {"id": f"V{n}", "price": "1.00", "inventory_item_id": f"I{n}"} for n in range(90)
        ]
        self.shopify.add_product(make_product("P4", "Many sizes", variants))
        for n in range(90):
            self.shopify.set_level(f"I{n}", "L1", n % 3)

        stock = await self.resolver.resolve_availability("P4")

        self.assertEqual(len(self.shopify.calls("GET", "/inventory_levels.json")), 3)
        self.assertEqual([s.available for s in stock], [n % 3 for n in range(90)])


class SynchronizerTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.shopify = FakeShopify()
        config = make_config(page_size=2)
        self.client = ShopifyCatalogClient(config.shopify, transport=self.shopify.transport())
        self.repo = new_repository()
        self.synchronizer = CatalogSynchronizer(self.client, self.repo)
        for n in range(5):
            self.shopify.add_product(make_product(f"P{n}", f"Product {n}", [
                {"id": f"V{n}", "price": f"{n}.00", "inventory_item_id": f"I{n}", "option1": "Default"},
            ]))

    async def asyncTearDown(self):
        await self.client.close()

    def snapshot(self):
        return list(self.repo.collection.find({}, {"_id": 0}).sort("shopifyId", 1))


class TestCatalogSynchronizer(SynchronizerTestCase):

    async def test_sync_all_pages(self):
        synced = await self.synchronizer.sync_all()

        self.assertEqual(synced, 5)
        self.assertEqual(len(self.shopify.calls("GET", "/products.json")), 3)
        docs = self.snapshot()
        self.assertEqual([d["shopifyId"] for d in docs], ["P0", "P1", "P2", "P3", "P4"])
        self.assertEqual(docs[3]["variants"], [{"id": "V3", "price": "3.00", "option1": "Default"}])

    async def test_repeated_sync_is_idempotent(self):
        await self.synchronizer.sync_all()
        self.repo.record_price_change("P1", "V1", "1.00", "user-1")
        first = self.snapshot()

        await self.synchronizer.sync_all()

        self.assertEqual(self.snapshot(), first)
        self.assertEqual(self.repo.collection.count_documents({}), 5)
        self.assertEqual(self.repo.get_product("P1").changed_by, "user-1")
        self.assertIsNone(self.repo.get_product("P2").changed_by)

    async def test_page_failure_aborts_run(self):
        # first page succeeds, the second keeps failing
        self.shopify.fail("GET", "/products.json", 503, skip=1)

        with self.assertRaises(UpstreamUnavailable):
            await self.synchronizer.sync_all()

        # pages already upserted stay committed
        self.assertEqual([d["shopifyId"] for d in self.snapshot()], ["P0", "P1"])
        self.assertEqual(len(self.shopify.calls("GET", "/products.json")), 4)


class TestSyncRunner(SynchronizerTestCase):

    async def test_failure_is_recorded_not_raised(self):
        self.shopify.fail("GET", "/products.json", 401)
        runner = SyncRunner(self.synchronizer)

        result = await runner.trigger()

        self.assertIsNone(result)
        status = runner.status()
        self.assertFalse(status.running)
        self.assertIn("UpstreamAuthError", status.error)
        self.assertIsNotNone(status.finished_at)

    async def test_success_is_recorded(self):
        runner = SyncRunner(self.synchronizer)

        self.assertEqual(await runner.trigger(), 5)

        status = runner.status().to_dict()
        self.assertEqual(status["productsSynced"], 5)
        self.assertIsNone(status["error"])
        self.assertFalse(status["running"])

    async def test_single_flight(self):
        runner = SyncRunner(self.synchronizer)

        first = runner.trigger()
        second = runner.trigger()
        self.assertIs(first, second)
        self.assertTrue(runner.status().running)

        await first
        self.assertEqual(len(self.shopify.calls("GET", "/products.json")), 3)

    async def test_can_be_retriggered(self):
        runner = SyncRunner(self.synchronizer)
        self.shopify.fail("GET", "/products.json", 500, times=3)

        await runner.trigger()
        self.assertIsNotNone(runner.status().error)

        await runner.trigger()
        self.assertIsNone(runner.status().error)
        self.assertEqual(runner.status().products_synced, 5)

    async def test_shutdown_cancels_running_sync(self):
        runner = SyncRunner(self.synchronizer)
        task = runner.trigger()

        await runner.shutdown()

        self.assertTrue(task.done())
        self.assertEqual(runner.status().error, "cancelled")


if __name__ == "__main__":
    unittest.main()
