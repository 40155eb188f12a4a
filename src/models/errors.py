from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    AUTHENTICATION = "AUTHENTICATION"
    NETWORK = "NETWORK"
    VALIDATION = "VALIDATION"
    VENDOR_SPECIFIC = "VENDOR_SPECIFIC"


class AdapterError(Exception):
    """
    Tagged failure raised by every layer between the services and the network.

    Args:
        message: Human readable description
        error_type: Category used by callers to decide between retrying,
            re-authenticating or fixing the input
        vendor: Vendor identifier the failure belongs to
        original_error: Underlying exception or response, if any
        status: HTTP status that produced the failure, if any
        details: Extra diagnostic data (observed statuses, payload preview)
    """

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        vendor: str,
        original_error: Any = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.vendor = str(getattr(vendor, "value", vendor))
        self.original_error = original_error
        self.status = status
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "type": self.error_type.value,
            "vendor": self.vendor,
            "message": self.message,
            "status": self.status,
            "detail": self.details,
        }

    def __repr__(self) -> str:
        return f"AdapterError({self.error_type.value}, vendor={self.vendor!r}, message={self.message!r})"
