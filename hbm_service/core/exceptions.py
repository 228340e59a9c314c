"""
HBM Service Exception Hierarchy

Every error raised by the service layer carries a code, message and details
so callers can translate it into a response and the audit log can record it.
Repository and driver errors are never wrapped; they propagate unchanged.

Exception Hierarchy:
    HBMBaseError
    ├── AuthenticationError
    ├── PermissionDeniedError
    │   └── OwnershipViolationError
    ├── ValidationError
    │   └── InvalidStateTransitionError
    ├── BusinessRuleViolationError
    │   └── ConcurrentModificationError
    └── NotFoundError
"""
from typing import Optional, Dict, Any, List, Sequence


class HBMBaseError(Exception):
    """
    Base exception for all service errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "HBM_ERROR"
    default_severity: str = "P2"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================

class AuthenticationError(HBMBaseError):
    """Authorization context missing or unverifiable."""
    default_code = "AUTHENTICATION_REQUIRED"
    default_severity = "P1"
    status_code = 401

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, **kwargs)


class PermissionDeniedError(HBMBaseError):
    """The caller may not attempt this action at all."""
    default_code = "PERMISSION_DENIED"
    default_severity = "P2"
    status_code = 403

    def __init__(
        self,
        message: str,
        required_permissions: Optional[Sequence[str]] = None,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        **kwargs
    ):
        self.required_permissions: List[str] = list(required_permissions or [])
        self.resource = resource
        self.action = action
        details = kwargs.pop("details", {})
        details.update({
            "required_permissions": self.required_permissions,
            "resource": resource,
            "action": action,
        })
        super().__init__(message, details=details, **kwargs)


class OwnershipViolationError(PermissionDeniedError):
    """
    The caller may perform the action, but not on this record.
    """
    default_code = "CUSTOMER_ACCESS_VIOLATION"
    default_severity = "P1"

    def __init__(
        self,
        message: str = "Access denied: You can only access your own resources",
        resource: Optional[str] = None,
        entity_id: Optional[Any] = None,
        action: Optional[str] = None,
        **kwargs
    ):
        self.entity_id = entity_id
        details = kwargs.pop("details", {})
        details["entity_id"] = str(entity_id) if entity_id is not None else None
        super().__init__(message, resource=resource, action=action, details=details, **kwargs)


# =============================================================================
# VALIDATION / BUSINESS RULES
# =============================================================================

class ValidationError(HBMBaseError):
    """Malformed input."""
    default_code = "VALIDATION_ERROR"
    default_severity = "P3"
    status_code = 400


class InvalidStateTransitionError(ValidationError):
    """Requested lifecycle transition is stale or not in the transition graph."""
    default_code = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        message: str,
        from_status: Optional[Any] = None,
        to_status: Optional[Any] = None,
        current_status: Optional[Any] = None,
        **kwargs
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.current_status = current_status
        details = kwargs.pop("details", {})
        details.update({
            "from_status": _status_repr(from_status),
            "to_status": _status_repr(to_status),
            "current_status": _status_repr(current_status),
        })
        super().__init__(message, details=details, **kwargs)


class BusinessRuleViolationError(HBMBaseError):
    """Structurally forbidden operation (protected roles, order deletion...)."""
    default_code = "BUSINESS_RULE_VIOLATION"
    default_severity = "P3"
    status_code = 422


class ConcurrentModificationError(BusinessRuleViolationError):
    """A conditional write found the row changed since it was read."""
    default_code = "RESOURCE_CONFLICT"
    default_severity = "P2"
    status_code = 409


# =============================================================================
# LOOKUP
# =============================================================================

class NotFoundError(HBMBaseError):
    """Referenced entity does not exist."""
    default_code = "RESOURCE_NOT_FOUND"
    default_severity = "P3"
    status_code = 404

    def __init__(self, resource: str, entity_id: Optional[Any] = None, **kwargs):
        self.resource = resource
        self.entity_id = entity_id
        if entity_id is not None:
            message = f"{resource} with id {entity_id} not found"
        else:
            message = f"{resource} not found"
        details = kwargs.pop("details", {})
        details.update({"resource": resource, "entity_id": str(entity_id) if entity_id is not None else None})
        super().__init__(message, details=details, **kwargs)


def _status_repr(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))
