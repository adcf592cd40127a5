"""
Database Layer for the Catalog Mirror service
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import MongoClient, ReturnDocument, UpdateOne
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from .config import MongoConfig
from .data_models import (
    LocalProductRecord, MongoDBCollections, RemoteProduct,
    create_mirror_fields, document_to_record
)
from .errors import StoreUnavailable


class DatabaseManager:
    """Manages the MongoDB connection"""

    def __init__(self, config: MongoConfig):
        self.config = config
        self.mongo_client = None
        self.mongo_db = None
        self.logger = logging.getLogger(__name__)

    def connect_mongodb(self):
        """Establish MongoDB connection"""
        try:
            timeout = self.config.server_selection_timeout_ms
            self.mongo_client = MongoClient(
                self.config.uri,
                serverSelectionTimeoutMS=timeout,
                connectTimeoutMS=timeout,
                socketTimeoutMS=timeout,
                tz_aware=True
            )

            # Test connection
            self.mongo_client.admin.command('ping')
            self.mongo_db = self.mongo_client[self.config.database]

            create_product_indexes(self.products_collection(), self.logger)

            self.logger.info("MongoDB connection established successfully")

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            self.logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    def ping(self) -> bool:
        if self.mongo_client is None:
            return False
        try:
            self.mongo_client.admin.command('ping')
            return True
        except PyMongoError as e:
            self.logger.warning(f"MongoDB ping failed: {e}")
            return False

    def products_collection(self):
        return self.mongo_db[self.config.collections.products]

    def close_connections(self):
        """Close all database connections"""
        if self.mongo_client:
            self.mongo_client.close()
        self.logger.info("Database connections closed")


def create_product_indexes(collection, logger: logging.Logger):
    """Create indexes for the products collection; shopifyId is unique"""
    for keys, options in MongoDBCollections.INDEXES[MongoDBCollections.PRODUCTS]:
        try:
            collection.create_index(keys, **options)
        except PyMongoError as e:
            logger.warning(f"Failed to create index for {collection.name}: {e}")


class ProductRepository:
    """Local Catalog Store: mirrored products keyed by remote product id"""

    def __init__(self, collection):
        self.collection = collection
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _lookup_filter(product_id: str) -> Dict:
        if ObjectId.is_valid(product_id) and len(product_id) == 24:
            return {'$or': [{'_id': ObjectId(product_id)}, {'shopifyId': product_id}]}
        return {'shopifyId': product_id}

    def get_product(self, product_id: str) -> Optional[LocalProductRecord]:
        """Get product by local id or remote id"""
        try:
            doc = self.collection.find_one(self._lookup_filter(product_id))
        except PyMongoError as e:
            self.logger.error(f"Failed to get product {product_id}: {e}")
            raise StoreUnavailable(f"Failed to read product {product_id}") from e
        return document_to_record(doc) if doc else None

    def list_products(self, updated_only: bool = False, search: Optional[str] = None,
                      page: int = 1, limit: int = 20) -> Tuple[List[LocalProductRecord], int]:
        """Page through mirrored products, newest local change first"""
        query: Dict = {}
        if updated_only:
            query['changedBy'] = {'$exists': True, '$ne': None}
        if search:
            pattern = {'$regex': re.escape(search), '$options': 'i'}
            query['$or'] = [
                {'title': pattern},
                {'shopifyId': pattern},
                {'variants.id': pattern},
                {'variants.option1': pattern},
            ]
        try:
            total = self.collection.count_documents(query)
            cursor = (
                self.collection.find(query)
                .sort([('changedAt', -1), ('shopifyId', 1)])
                .skip((page - 1) * limit)
                .limit(limit)
            )
            return [document_to_record(doc) for doc in cursor], total
        except PyMongoError as e:
            self.logger.error(f"Failed to list products: {e}")
            raise StoreUnavailable("Failed to list products") from e

    def upsert_many(self, products: List[RemoteProduct]) -> int:
        """Mirror remote products, leaving changedBy/changedAt untouched"""
        if not products:
            return 0
        operations = [
            UpdateOne({'shopifyId': p.id}, {'$set': create_mirror_fields(p)}, upsert=True)
            for p in products
        ]
        try:
            self.collection.bulk_write(operations, ordered=False)
        except PyMongoError as e:
            self.logger.error(f"Failed to upsert {len(products)} products: {e}")
            raise StoreUnavailable("Failed to upsert products") from e
        return len(operations)

    def upsert_product(self, product: RemoteProduct) -> LocalProductRecord:
        """Mirror a single remote product and return the stored record"""
        try:
            doc = self.collection.find_one_and_update(
                {'shopifyId': product.id},
                {'$set': create_mirror_fields(product)},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            self.logger.error(f"Failed to upsert product {product.id}: {e}")
            raise StoreUnavailable(f"Failed to upsert product {product.id}") from e
        return document_to_record(doc)

    def record_price_change(self, shopify_id: str, variant_id: str, price: str,
                            changed_by: str, changed_at: Optional[datetime] = None) -> bool:
        """Set one variant's price and stamp who changed it.

        Returns False when no local record holds that variant.
        """
        changed_at = changed_at or datetime.now(timezone.utc)
        try:
            result = self.collection.update_one(
                {'shopifyId': shopify_id, 'variants.id': variant_id},
                {'$set': {
                    'variants.$.price': price,
                    'changedBy': changed_by,
                    'changedAt': changed_at,
                }}
            )
        except PyMongoError as e:
            self.logger.error(f"Failed to record price change for variant {variant_id}: {e}")
            raise StoreUnavailable(f"Failed to update product {shopify_id}") from e
        return result.matched_count > 0
