"""
Main Application for the Catalog Mirror service
"""

import argparse
import asyncio
import logging
import os
import sys

import uvicorn

from .apis.main import create_app
from .config import DEFAULT_CONFIG_PATH, AppConfig, LoggingConfig, load_config
from .database import DatabaseManager, ProductRepository
from .services import CatalogServices, build_services
from .shopify_client import ShopifyCatalogClient


def configure_logging(log_config: LoggingConfig) -> logging.Logger:
    """Setup logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_config.file:
        log_dir = os.path.dirname(log_config.file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_config.file))

    logging.basicConfig(
        level=getattr(logging, log_config.level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
    return logging.getLogger(__name__)


class CatalogMirrorSystem:
    """Builds the long-lived components once and serves them"""

    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.db_manager = None
        self.services = None

    def initialize(self) -> CatalogServices:
        """Connect the store and build the shared client and services"""
        self.logger.info("Initializing Catalog Mirror...")

        self.db_manager = DatabaseManager(self.config.database.mongodb)
        self.db_manager.connect_mongodb()

        client = ShopifyCatalogClient(self.config.shopify)
        repository = ProductRepository(self.db_manager.products_collection())
        self.services = build_services(self.config, client, repository, self.db_manager)

        if not self.config.shopify.has_credentials:
            self.logger.warning("Shopify credentials are not configured; remote calls will fail")
        if not self.config.shopify.location_id:
            self.logger.warning("No inventory location configured; stock operations are disabled")

        self.logger.info("All components initialized successfully")
        return self.services

    def serve(self, host: str, port: int):
        app = create_app(self.services)
        self.logger.info(f"Serving Catalog Mirror API on http://{host}:{port}")
        uvicorn.run(app, host=host, port=port, log_config=None)

    async def sync_once(self) -> int:
        """One sync run, for scheduled (cron) triggers"""
        try:
            return await self.services.synchronizer.sync_all()
        finally:
            await self.services.client.close()

    def cleanup(self):
        if self.db_manager:
            self.db_manager.close_connections()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Catalog Mirror service')
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH,
                        help='Path to configuration file')
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=int(os.getenv('PORT', 4000)))
    parser.add_argument('--sync-only', action='store_true',
                        help='Run one catalog sync and exit')

    args = parser.parse_args()

    config = load_config(args.config)
    logger = configure_logging(config.logging)
    system = CatalogMirrorSystem(config)

    try:
        system.initialize()
        if args.sync_only:
            synced = asyncio.run(system.sync_once())
            logger.info(f"Sync finished: {synced} products")
        else:
            system.serve(args.host, args.port)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        system.cleanup()
        sys.exit(1)

    system.cleanup()


if __name__ == "__main__":
    main()
