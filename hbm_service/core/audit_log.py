"""
Audit logging for service operations

Track every service operation for security and compliance
- Records who did what, on which resource, and whether it succeeded
- Logs to a dedicated structured "audit" logger
- Provides decorator for async service methods
"""
import logging
import functools
import re
from datetime import datetime, timezone
from typing import Optional, Any, Callable

from hbm_service.core.config import settings

# Structured audit logger
audit_logger = logging.getLogger("audit")
audit_logger.setLevel(logging.INFO)

# Detail keys are split into words (snake_case, kebab-case, camelCase) and
# dropped when a word matches. "key" only counts after a qualifier, so
# storage_key survives while api_key does not.
SENSITIVE_WORDS = frozenset({
    "password", "passwords", "passwd", "secret", "secrets",
    "token", "tokens", "credential", "credentials", "apikey",
})
KEY_QUALIFIERS = frozenset({"api", "private", "access", "signing", "encryption"})


def _key_words(key: str) -> list:
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", str(key))
    return [w for w in re.split(r"[^a-z0-9]+", key.lower()) if w]


def is_sensitive_key(key: str) -> bool:
    words = _key_words(key)
    if SENSITIVE_WORDS.intersection(words):
        return True
    return any(word == "key" and prev in KEY_QUALIFIERS for prev, word in zip(words, words[1:]))


def _safe_details(details: dict) -> dict:
    return {k: v for k, v in details.items() if not is_sensitive_key(k)}


def log_service_operation(
    operation: str,
    context,
    resource: str,
    details: Optional[dict] = None,
    success: bool = True,
):
    """
    Log a service operation.

    Args:
        operation: Operation identifier (e.g., "transition_order_status")
        context: AuthContext of the caller, or None for public paths
        resource: Resource affected (e.g., "orders")
        details: Additional context about the operation
        success: Whether the operation succeeded
    """
    if not settings.AUDIT_LOG_ENABLED:
        return

    actor_id = getattr(context, "user_id", None)
    actor_type = getattr(getattr(context, "user_type", None), "value", None)

    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "operation": operation,
        "actor_id": actor_id,
        "actor_type": actor_type,
        "role": getattr(context, "role", None),
        "resource": resource,
        "success": success,
        "environment": settings.ENVIRONMENT,
    }

    if details:
        log_entry["details"] = _safe_details(details)

    actor = f"{actor_type}/{actor_id}" if actor_id else "anonymous"
    if success:
        audit_logger.info(
            f"AUDIT: {operation} by {actor} on {resource}",
            extra={"audit": log_entry}
        )
    else:
        audit_logger.warning(
            f"AUDIT FAILED: {operation} by {actor} on {resource}",
            extra={"audit": log_entry}
        )


def audit_operation(operation: str):
    """
    Decorator to log service method outcomes.

    Usage:
        @audit_operation("cancel_order")
        async def cancel_order(self, context: AuthContext, order_id, reason): ...

    The instance must expose a ``resource`` attribute. The method's first
    argument after self is the AuthContext. Exceptions are logged and
    re-raised unchanged.
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(self, context, *args, **kwargs):
            resource = getattr(self, "resource", "unknown")
            resource = getattr(resource, "value", resource)
            try:
                result = await func(self, context, *args, **kwargs)
            except Exception as e:
                log_service_operation(
                    operation,
                    context,
                    resource,
                    details={"error": str(e)[:200], "error_type": e.__class__.__name__},
                    success=False,
                )
                raise

            entity_id: Any = None
            if result is not None:
                if hasattr(result, "id"):
                    entity_id = result.id
                elif isinstance(result, dict) and "id" in result:
                    entity_id = result["id"]

            log_service_operation(
                operation,
                context,
                resource,
                details={"entity_id": str(entity_id) if entity_id is not None else None},
            )
            return result

        return wrapper
    return decorator
