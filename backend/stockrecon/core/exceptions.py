"""Domain errors raised by the stock reconciliation services.

Each error carries a machine-readable ``kind`` and the HTTP status the API
layer renders it with.
"""

from typing import Any, Dict, Optional


class StockReconciliationError(Exception):
    """Base class for all reconciliation errors."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class AuthenticationError(StockReconciliationError):
    """Raised when the POS provider rejects our credentials."""

    kind = "authentication_error"
    status_code = 502

    def __init__(self, message: str, provider_status: Optional[int] = None):
        self.provider_status = provider_status
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider_status"] = self.provider_status
        return data


class UpstreamSyncError(StockReconciliationError):
    """Raised when the POS provider is unreachable or returns bad data."""

    kind = "upstream_sync_error"
    status_code = 502

    def __init__(self, message: str, provider_status: Optional[int] = None):
        self.provider_status = provider_status
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider_status"] = self.provider_status
        return data


class ValidationError(StockReconciliationError):
    """Raised for negative quantities or missing required fields."""

    kind = "validation_error"
    status_code = 400


class PreconditionError(StockReconciliationError):
    """Raised when an operation is not allowed in the current state."""

    kind = "precondition_error"
    status_code = 409


class NotFoundError(StockReconciliationError):
    """Raised for unknown ids or records owned by someone else."""

    kind = "not_found"
    status_code = 404


class ConfigurationError(StockReconciliationError):
    """Raised when a required collaborator or setting is missing."""

    kind = "configuration_error"
    status_code = 500
