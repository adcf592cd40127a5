"""
Error taxonomy for the Catalog Mirror service

Every error carries the HTTP status it maps to at the route boundary and a
stable `error` code for the JSON body.
"""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base class for errors surfaced to API callers"""
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error, "message": self.message}
        body.update(self.details)
        return body

    def describe(self) -> str:
        """One-line `code: message` form for logs and warnings"""
        return f"{self.error}: {self.message}"


class ValidationError(CatalogError):
    """Bad or missing caller input"""
    status_code = 400
    error = "validation_error"


class AuthenticationRequired(CatalogError):
    status_code = 401
    error = "authentication_required"


class ConfigError(CatalogError):
    """Required configuration is absent; operator-fixable"""
    status_code = 500
    error = "config_error"


class UpstreamAuthError(CatalogError):
    """Credentials rejected by the remote platform"""
    status_code = 500
    error = "upstream_auth_error"


class UpstreamUnavailable(CatalogError):
    """Network failure, timeout or 5xx from the remote platform"""
    status_code = 500
    error = "upstream_unavailable"


class NotFound(CatalogError):
    status_code = 404
    error = "not_found"


class StoreUnavailable(CatalogError):
    """Local document store failure"""
    status_code = 500
    error = "store_unavailable"


class PartialWorkflowFailure(CatalogError):
    """A price update step failed after the remote price already changed.

    The remote price mutation is never rolled back, so callers must reconcile
    manually instead of retrying the whole update.
    """
    status_code = 500
    error = "partial_workflow_failure"

    def __init__(self, step: str, message: str, cause: Optional[CatalogError] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.step = step
        self.cause = cause
        self.price_updated = True

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({
            "success": False,
            "step": self.step,
            "priceUpdated": self.price_updated,
        })
        if self.cause is not None:
            body["cause"] = {"error": self.cause.error, "message": self.cause.message}
        return body
