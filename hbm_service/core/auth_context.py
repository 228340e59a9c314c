"""
Authorization context and guard helpers

An AuthContext is built once per call chain from an already verified
identity and passed as the first argument to every service method. It is
frozen; nothing downstream may widen it.
"""
import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional, Sequence, Union

from hbm_service.core.exceptions import AuthenticationError, PermissionDeniedError
from hbm_service.core.permissions import (
    get_default_permissions,
    has_all_permissions,
    has_any_permissions,
)


class UserType(str, Enum):
    STAFF = "staff"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class AuthContext:
    """
    Identity and capabilities of the caller.

    user_type is independent of permissions: a customer context is
    authorized by ownership, a staff context by the permission catalog.
    """

    user_id: str
    user_type: UserType
    role: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        # Accept plain strings/lists at construction, store canonical types
        object.__setattr__(self, "user_type", UserType(self.user_type))
        object.__setattr__(self, "permissions", frozenset(str(p) for p in self.permissions))

    @property
    def is_staff(self) -> bool:
        return self.user_type == UserType.STAFF

    @property
    def is_customer(self) -> bool:
        return self.user_type == UserType.CUSTOMER


def create_auth_context(
    user_id,
    user_type: Union[UserType, str],
    role: str,
    permissions: Optional[Iterable[str]] = None,
) -> AuthContext:
    """
    Build a context from a verified identity record.

    When the record carries no explicit permission override, the role's
    catalog default set is used.
    """
    if permissions is None:
        permissions = get_default_permissions(role)
    return AuthContext(
        user_id=str(user_id),
        user_type=UserType(user_type),
        role=role,
        permissions=frozenset(permissions),
    )


def validate_authentication(context: Optional[AuthContext]) -> AuthContext:
    if context is None or not getattr(context, "user_id", None):
        raise AuthenticationError("Authentication required")
    return context


def _suffix(operation: Optional[str]) -> str:
    return f" for {operation}" if operation else ""


def validate_permissions(
    context: AuthContext,
    required: Union[str, Sequence[str]],
    require_all: bool = True,
    throw_on_failure: bool = True,
    operation: Optional[str] = None,
) -> bool:
    """
    Check the context against one or more permissions.

    Args:
        context: Caller context
        required: Permission string or list of them
        require_all: All (True) or any (False) of the permissions
        throw_on_failure: Raise instead of returning False
        operation: Label used in the error message

    Raises:
        AuthenticationError: If the context is missing
        PermissionDeniedError: If the check fails and throw_on_failure is set
    """
    validate_authentication(context)
    required = [required] if isinstance(required, str) else list(required)

    if require_all:
        allowed = has_all_permissions(context.permissions, required)
    else:
        allowed = has_any_permissions(context.permissions, required)

    if not allowed and throw_on_failure:
        raise PermissionDeniedError(
            f"Insufficient permissions{_suffix(operation)}",
            required_permissions=required,
        )
    return allowed


def validate_resource_action(
    context: AuthContext,
    resource: str,
    action: str,
    throw_on_failure: bool = True,
) -> bool:
    resource = getattr(resource, "value", resource)
    action = getattr(action, "value", action)
    return validate_permissions(
        context,
        f"{resource}:{action}",
        throw_on_failure=throw_on_failure,
        operation=f"{action} {resource}",
    )


def validate_role(
    context: AuthContext,
    roles: Union[str, Sequence[str]],
    throw_on_failure: bool = True,
    operation: Optional[str] = None,
) -> bool:
    validate_authentication(context)
    roles = [roles] if isinstance(roles, str) else list(roles)
    allowed = context.role in roles

    if not allowed and throw_on_failure:
        raise PermissionDeniedError(
            f"Role '{context.role}' is not authorized{_suffix(operation)}",
            details={"current_role": context.role, "required_roles": roles},
        )
    return allowed


def has_role(context: Optional[AuthContext], roles: Union[str, Sequence[str]]) -> bool:
    if context is None:
        return False
    roles = [roles] if isinstance(roles, str) else list(roles)
    return context.role in roles


def validate_staff_access(
    context: AuthContext,
    throw_on_failure: bool = True,
    operation: Optional[str] = None,
) -> bool:
    validate_authentication(context)
    if context.user_type != UserType.STAFF:
        if throw_on_failure:
            raise PermissionDeniedError(
                f"Staff access required{_suffix(operation)}",
                details={"user_type": context.user_type.value, "role": context.role},
            )
        return False
    return True


def validate_customer_access(
    context: AuthContext,
    throw_on_failure: bool = True,
    operation: Optional[str] = None,
) -> bool:
    validate_authentication(context)
    if context.user_type != UserType.CUSTOMER:
        if throw_on_failure:
            raise PermissionDeniedError(
                f"Customer access required{_suffix(operation)}",
                details={"user_type": context.user_type.value, "role": context.role},
            )
        return False
    return True


# =============================================================================
# GUARDS
# =============================================================================
#
# Each guard wraps an async service method whose first argument after self
# is the AuthContext, and runs its check before the method body.

def _guard(check: Callable[[AuthContext, str], None]):
    def decorator(func: Callable):
        operation = func.__qualname__

        @functools.wraps(func)
        async def wrapper(self, context, *args, **kwargs):
            check(context, operation)
            return await func(self, context, *args, **kwargs)

        return wrapper
    return decorator


def requires_permissions(*permissions: str, require_all: bool = True):
    """
    Usage:
        @requires_permissions("roles:manage")
        async def rebuild_roles(self, context: AuthContext): ...
    """
    return _guard(
        lambda context, operation: validate_permissions(
            context, list(permissions), require_all=require_all, operation=operation
        )
    )


def requires_role(*roles: str):
    return _guard(lambda context, operation: validate_role(context, list(roles), operation=operation))


def requires_staff_access():
    return _guard(lambda context, operation: validate_staff_access(context, operation=operation))


def requires_customer_access():
    return _guard(lambda context, operation: validate_customer_access(context, operation=operation))
