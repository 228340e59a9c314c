"""
Permission catalog and evaluator for RBAC

Permission string format: "resource:action", plus the two universal tags
"*" and "superadmin" which satisfy any required permission.

Resources: users, customers, products, orders, inquiries, media
Actions: create, read, update, delete, manage

The evaluator functions are pure and total: they never raise, and a
malformed string simply never matches anything. Input read from outside the
process should go through Permission.parse() first so that typos fail fast.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from hbm_service.core.exceptions import ValidationError


class Resource(str, Enum):
    USERS = "users"
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    ORDERS = "orders"
    INQUIRIES = "inquiries"
    MEDIA = "media"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


WILDCARD = "*"
SUPERADMIN = "superadmin"
UNIVERSAL_PERMISSIONS = (SUPERADMIN, WILDCARD)


@dataclass(frozen=True)
class Permission:
    """
    A parsed permission: either resource x action, or a universal tag.

    str(permission) gives the canonical string stored on roles and carried
    in an AuthContext.
    """

    resource: Optional[Resource] = None
    action: Optional[Action] = None
    universal: Optional[str] = None

    def __str__(self) -> str:
        if self.universal:
            return self.universal
        return f"{self.resource.value}:{self.action.value}"

    @property
    def is_universal(self) -> bool:
        return self.universal is not None

    @classmethod
    def parse(cls, text: str) -> "Permission":
        """
        Parse a permission string.

        Raises:
            ValidationError: If the string is not a catalog permission
        """
        permission = cls.try_parse(text)
        if permission is None:
            raise ValidationError(
                f"Invalid permission: {text!r}",
                details={"permission": text},
            )
        return permission

    @classmethod
    def try_parse(cls, text) -> Optional["Permission"]:
        if not isinstance(text, str):
            return None
        if text in UNIVERSAL_PERMISSIONS:
            return cls(universal=text)
        parts = text.split(":")
        if len(parts) != 2:
            return None
        try:
            return cls(resource=Resource(parts[0]), action=Action(parts[1]))
        except ValueError:
            return None


PermissionLike = Union[str, Permission]


def create_permission(resource: Union[Resource, str], action: Union[Action, str]) -> str:
    """Build a permission string, validating both halves."""
    return str(Permission(resource=Resource(resource), action=Action(action)))


def parse_permission(text: str) -> Tuple[Resource, Action]:
    permission = Permission.parse(text)
    if permission.is_universal:
        raise ValidationError(
            f"Universal permission {text!r} has no resource/action",
            details={"permission": text},
        )
    return permission.resource, permission.action


def is_valid_permission(text) -> bool:
    return Permission.try_parse(text) is not None


# =============================================================================
# CATALOG
# =============================================================================

ALL_PERMISSIONS: List[str] = [
    create_permission(resource, action) for resource in Resource for action in Action
]

PERMISSION_GROUPS: Dict[str, List[str]] = {
    resource.value: [create_permission(resource, action) for action in Action]
    for resource in Resource
}

DEFAULT_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "superadmin": list(ALL_PERMISSIONS),
    "admin": [p for p in ALL_PERMISSIONS if not p.startswith(f"{Resource.USERS.value}:")],
    "staff": [
        "customers:read",
        "customers:update",
        "products:read",
        "orders:read",
        "orders:update",
        "inquiries:read",
        "inquiries:update",
        "media:read",
        "media:create",
    ],
    "customer": [],
}

PROTECTED_ROLES = ("superadmin", "admin", "staff")


def is_protected_role(role_name: Optional[str]) -> bool:
    return bool(role_name) and role_name.lower() in PROTECTED_ROLES


def get_default_permissions(role_name: Optional[str]) -> List[str]:
    """Catalog default permission set for a role name (empty if unknown)."""
    if not role_name:
        return []
    return list(DEFAULT_ROLE_PERMISSIONS.get(role_name, []))


def get_resource_permissions(resource: Union[Resource, str]) -> List[str]:
    return list(PERMISSION_GROUPS[Resource(resource).value])


def get_action_permissions(action: Union[Action, str]) -> List[str]:
    action = Action(action)
    return [create_permission(resource, action) for resource in Resource]


# =============================================================================
# EVALUATOR
# =============================================================================

def _as_strings(permissions: Optional[Iterable[PermissionLike]]) -> set:
    if not permissions:
        return set()
    if isinstance(permissions, (str, Permission)):
        permissions = [permissions]
    return {str(p) for p in permissions}


def has_universal_permission(permissions: Optional[Iterable[PermissionLike]]) -> bool:
    held = _as_strings(permissions)
    return WILDCARD in held or SUPERADMIN in held


def has_permission(permissions: Optional[Iterable[PermissionLike]], required: PermissionLike) -> bool:
    """
    Check if a permission set satisfies a required permission.

    Exact membership only: no prefix or "resource:*" matching.

    Args:
        permissions: Permissions held by the caller
        required: Required permission string

    Returns:
        True if held contains required, "*" or "superadmin"
    """
    held = _as_strings(permissions)
    if WILDCARD in held or SUPERADMIN in held:
        return True
    return str(required) in held


def has_resource_permission(
    permissions: Optional[Iterable[PermissionLike]],
    resource: Union[Resource, str],
    action: Union[Action, str],
) -> bool:
    resource = getattr(resource, "value", resource)
    action = getattr(action, "value", action)
    return has_permission(permissions, f"{resource}:{action}")


def has_all_permissions(
    permissions: Optional[Iterable[PermissionLike]],
    required: Optional[Sequence[PermissionLike]],
) -> bool:
    """Check if every required permission is held. An empty requirement is satisfied."""
    held = _as_strings(permissions)
    if WILDCARD in held or SUPERADMIN in held:
        return True
    return all(str(p) in held for p in (required or []))


def has_any_permissions(
    permissions: Optional[Iterable[PermissionLike]],
    required: Optional[Sequence[PermissionLike]],
) -> bool:
    """Check if at least one required permission is held."""
    held = _as_strings(permissions)
    if WILDCARD in held or SUPERADMIN in held:
        return True
    return any(str(p) in held for p in (required or []))


def satisfying_permissions(resource: Union[Resource, str], action: Union[Action, str]) -> List[str]:
    """Every permission that would satisfy resource:action (for denial diagnostics)."""
    resource = getattr(resource, "value", resource)
    action = getattr(action, "value", action)
    return [f"{resource}:{action}", WILDCARD, SUPERADMIN]


# =============================================================================
# PERMISSION SET UTILITIES
# =============================================================================

def optimize_permissions(permissions: Optional[Iterable[PermissionLike]]) -> List[str]:
    """
    Remove redundant permissions.

    {"superadmin", ...} collapses to ["superadmin"], {"*", ...} to ["*"];
    otherwise duplicates are dropped and order is preserved.
    """
    ordered = [str(p) for p in (permissions or [])]
    if SUPERADMIN in ordered:
        return [SUPERADMIN]
    if WILDCARD in ordered:
        return [WILDCARD]
    return list(dict.fromkeys(ordered))


def validate_permissions(permissions: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Split permissions into catalog-valid and invalid entries.

    Returns:
        Tuple of (valid, invalid)
    """
    valid, invalid = [], []
    for permission in permissions:
        if is_valid_permission(permission):
            valid.append(permission)
        else:
            invalid.append(permission)
    return valid, invalid


def get_missing_permissions(
    permissions: Optional[Iterable[PermissionLike]],
    required: Sequence[PermissionLike],
) -> List[str]:
    return [str(p) for p in required if not has_permission(permissions, p)]


def compare_permissions(
    old_permissions: Iterable[str],
    new_permissions: Iterable[str],
) -> Tuple[List[str], List[str], List[str]]:
    """Returns (added, removed, unchanged), each in input order."""
    old_list = list(dict.fromkeys(old_permissions))
    new_list = list(dict.fromkeys(new_permissions))
    old_set, new_set = set(old_list), set(new_list)
    added = [p for p in new_list if p not in old_set]
    removed = [p for p in old_list if p not in new_set]
    unchanged = [p for p in old_list if p in new_set]
    return added, removed, unchanged


def get_permission_conflicts(permissions: Iterable[str]) -> List[str]:
    permissions = list(permissions)
    conflicts = []
    if SUPERADMIN in permissions or WILDCARD in permissions:
        specific = [p for p in permissions if p not in UNIVERSAL_PERMISSIONS]
        if specific:
            conflicts.append("Superadmin permissions make specific permissions redundant")
    return conflicts


def generate_permission_matrix(permissions: Optional[Iterable[PermissionLike]]) -> Dict[str, Dict[str, bool]]:
    """Resource -> action -> allowed, for every catalog entry."""
    return {
        resource.value: {
            action.value: has_resource_permission(permissions, resource, action)
            for action in Action
        }
        for resource in Resource
    }


def group_permissions_by_resource(permissions: Iterable[str]) -> Dict[str, List[str]]:
    """Group by resource; universal tags go under "system", unparseable ones are dropped."""
    grouped: Dict[str, List[str]] = {}
    for text in permissions:
        permission = Permission.try_parse(text)
        if permission is None:
            continue
        key = "system" if permission.is_universal else permission.resource.value
        grouped.setdefault(key, []).append(text)
    return grouped


def get_permission_description(text: str) -> str:
    if text == SUPERADMIN:
        return "All permissions (Super Administrator)"
    if text == WILDCARD:
        return "All permissions (Wildcard)"
    permission = Permission.try_parse(text)
    if permission is None:
        return "Invalid permission format"
    return f"{permission.action.value.capitalize()} {permission.resource.value.capitalize()}"


@dataclass
class PermissionImpact:
    impacted_users: List[str]
    gained_permissions: List[str]
    lost_permissions: List[str]
    severity: str  # low, medium, high


def analyze_permission_impact(
    old_permissions: Iterable[str],
    new_permissions: Iterable[str],
    affected_user_ids: Optional[Sequence] = None,
) -> PermissionImpact:
    """
    Summarize what a role permission change does to its holders.

    Losing any permission is high impact; gaining more than three is medium.
    """
    gained, lost, _ = compare_permissions(old_permissions, new_permissions)
    if lost:
        severity = "high"
    elif len(gained) > 3:
        severity = "medium"
    else:
        severity = "low"
    return PermissionImpact(
        impacted_users=list(affected_user_ids or []),
        gained_permissions=gained,
        lost_permissions=lost,
        severity=severity,
    )
