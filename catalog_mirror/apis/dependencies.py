"""
FastAPI dependencies shared by the routers
"""
from typing import Optional

from fastapi import Header, Request

from ..errors import AuthenticationRequired
from ..services import CatalogServices

TRUTHY = {"1", "true", "yes", "y", "on"}


def parse_flag(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in TRUTHY


def get_services(request: Request) -> CatalogServices:
    return request.app.state.services


def get_actor_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity, set by the authenticating gateway in front of this service"""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequired("X-User-Id header is required")
    return x_user_id.strip()
