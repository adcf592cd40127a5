"""
Configuration for the Catalog Mirror service

Settings live in a YAML file (config/config.yaml by default). Secrets and
deployment-specific values can be overridden from the environment:

- SHOPIFY_STORE_URL, SHOPIFY_API_KEY, SHOPIFY_API_PASSWORD
- SHOPIFY_API_VERSION, SHOPIFY_LOCATION_ID
- MONGODB_URI, MONGODB_DATABASE
- LOG_LEVEL
"""

import logging
import os
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = os.getenv('CATALOG_MIRROR_CONFIG', 'config/config.yaml')

logger = logging.getLogger(__name__)


class ShopifyConfig(BaseModel):
    """Admin REST credentials and limits for the remote platform"""
    store_url: str = ""
    api_key: str = ""
    api_password: str = ""
    api_version: str = "2024-10"
    location_id: Optional[str] = None
    page_size: int = Field(default=250, ge=1, le=250)
    inventory_batch_size: int = Field(default=40, ge=1, le=40)
    timeout_seconds: float = 10.0
    read_retries: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = 0.5

    @field_validator('location_id', mode='before')
    @classmethod
    def _location_as_str(cls, value):
        # numeric ids in YAML load as int
        if value is None or value == "":
            return None
        return str(value)

    @property
    def has_credentials(self) -> bool:
        return bool(self.store_url and self.api_key and self.api_password)


class MongoCollections(BaseModel):
    products: str = "products"


class MongoConfig(BaseModel):
    uri: str = "mongodb://localhost:27017/"
    database: str = "catalog_mirror"
    collections: MongoCollections = MongoCollections()
    server_selection_timeout_ms: int = 5000


class DatabaseConfig(BaseModel):
    mongodb: MongoConfig = MongoConfig()


class PricingConfig(BaseModel):
    # Every priced variant is locked to this many available units
    locked_stock_quantity: int = Field(default=1, ge=0)
    serialize_per_variant: bool = True


class SyncConfig(BaseModel):
    on_startup: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/catalog_mirror.log"


class ApiConfig(BaseModel):
    cors_origins: List[str] = ["*"]
    default_page_size: int = 20
    max_page_size: int = 250


class AppConfig(BaseModel):
    shopify: ShopifyConfig = ShopifyConfig()
    database: DatabaseConfig = DatabaseConfig()
    pricing: PricingConfig = PricingConfig()
    sync: SyncConfig = SyncConfig()
    logging: LoggingConfig = LoggingConfig()
    api: ApiConfig = ApiConfig()


ENV_OVERRIDES = {
    'SHOPIFY_STORE_URL': ('shopify', 'store_url'),
    'SHOPIFY_API_KEY': ('shopify', 'api_key'),
    'SHOPIFY_API_PASSWORD': ('shopify', 'api_password'),
    'SHOPIFY_API_VERSION': ('shopify', 'api_version'),
    'SHOPIFY_LOCATION_ID': ('shopify', 'location_id'),
    'MONGODB_URI': ('database', 'mongodb', 'uri'),
    'MONGODB_DATABASE': ('database', 'mongodb', 'database'),
    'LOG_LEVEL': ('logging', 'level'),
}


def _apply_env_overrides(raw: Dict, environ) -> Dict:
    for name, path in ENV_OVERRIDES.items():
        value = environ.get(name)
        if not value:
            continue
        section = raw
        for key in path[:-1]:
            child = section.get(key)
            if not isinstance(child, dict):
                child = section[key] = {}
            section = child
        section[path[-1]] = value
    return raw


def load_config(config_path: str = DEFAULT_CONFIG_PATH, environ=None) -> AppConfig:
    """Load configuration from YAML file and apply environment overrides"""
    environ = os.environ if environ is None else environ
    try:
        with open(config_path, 'r') as file:
            raw = yaml.safe_load(file) or {}
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {config_path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file: {e}")
        raise

    # yaml gives None for empty sections
    raw = {key: value for key, value in raw.items() if value is not None}
    return AppConfig.model_validate(_apply_env_overrides(raw, environ))
