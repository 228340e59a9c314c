"""
Role Service

Roles live under the users resource in the permission catalog: reading
roles needs users:read, changing them needs users:manage.

Built-in roles, and any role carrying a protected name, refuse every
mutation with BusinessRuleViolationError whatever the caller holds.
Permission lists are validated wholesale against the catalog before
anything is written.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from hbm_service.core.auth_context import AuthContext, requires_staff_access
from hbm_service.core.exceptions import BusinessRuleViolationError, HBMBaseError, ValidationError
from hbm_service.core.permissions import (
    ALL_PERMISSIONS,
    SUPERADMIN,
    WILDCARD,
    Action,
    Resource,
    analyze_permission_impact,
    compare_permissions,
    get_permission_conflicts,
    get_permission_description,
    is_protected_role,
    optimize_permissions,
    validate_permissions,
)
from hbm_service.models import Role
from hbm_service.schemas.common import PaginatedResult, QueryOptions
from hbm_service.schemas.role import BulkPermissionOperation, BulkPermissionResult, RoleCreate, RoleUpdate
from hbm_service.services.base_service import AuthorizedService, validate_payload

logger = logging.getLogger(__name__)


def is_built_in_role(role: Role) -> bool:
    return bool(role.is_built_in) or is_protected_role(role.name)


def require_catalog_permissions(permissions: Iterable[str]) -> List[str]:
    """
    Reject the whole list if any entry is not a catalog permission.

    Raises:
        ValidationError: Listing every invalid entry
    """
    permissions = list(permissions)
    _, invalid = validate_permissions(permissions)
    if invalid:
        raise ValidationError(
            f"Invalid permission IDs: {', '.join(str(p) for p in invalid)}",
            details={"invalid_permissions": invalid},
        )
    return list(dict.fromkeys(permissions))


class RoleService(AuthorizedService[Role]):
    resource = Resource.USERS
    entity_name = "roles"

    def __init__(self, repository, user_repository=None):
        super().__init__(repository)
        self.user_repository = user_repository

    def catalog_action(self, action: Action) -> Action:
        return Action.READ if Action(action) == Action.READ else Action.MANAGE

    def check_customer_access(self, context: AuthContext, entity: Role) -> bool:
        return False

    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        return options

    def _reject_built_in(self, role: Role, message: str) -> None:
        if is_built_in_role(role):
            raise BusinessRuleViolationError(
                message,
                details={"role_id": str(role.id), "role_name": role.name},
            )

    async def _require_unique_name(self, name: str, role_id=None) -> None:
        if is_protected_role(name):
            raise BusinessRuleViolationError("Cannot use protected role names", details={"name": name})
        existing = await self.repository.find_by_name(name)
        if existing is not None and str(existing.id) != str(role_id):
            raise BusinessRuleViolationError("Role with this name already exists", details={"name": name})

    async def check_update_rules(self, context: AuthContext, entity: Role, data: Dict[str, Any]) -> None:
        self._reject_built_in(entity, "Cannot modify built-in roles")
        if "is_built_in" in data and bool(data["is_built_in"]) != bool(entity.is_built_in):
            raise BusinessRuleViolationError("Cannot change built-in status")
        if data.get("name") and data["name"] != entity.name:
            await self._require_unique_name(data["name"], entity.id)
        if data.get("permissions") is not None:
            data["permissions"] = require_catalog_permissions(data["permissions"])

    async def check_delete_rules(self, context: AuthContext, entity: Role) -> None:
        self._reject_built_in(entity, "Cannot delete built-in roles")

    async def create_role(self, context: AuthContext, data: Union[RoleCreate, Dict[str, Any]]) -> Role:
        """
        Create a custom role.

        Raises:
            PermissionDeniedError: If the caller lacks users:manage
            ValidationError: If any permission is not in the catalog
            BusinessRuleViolationError: If the name is protected or taken
        """
        self.require_permission(context, Action.CREATE)
        if isinstance(data, dict) and data.get("is_built_in"):
            raise BusinessRuleViolationError("Cannot create built-in roles")
        payload = validate_payload(RoleCreate, data)

        permissions = require_catalog_permissions(payload.permissions)
        await self._require_unique_name(payload.name)

        role = await self.repository.create({
            "name": payload.name,
            "description": payload.description,
            "permissions": permissions,
            "is_built_in": False,
        })
        self.log_operation(
            "create_role",
            context,
            {"entity_id": str(role.id), "name": role.name, "permission_count": len(permissions)},
        )
        return role

    async def update_role(self, context: AuthContext, role_id, data: Union[RoleUpdate, Dict[str, Any]]) -> Role:
        changes = validate_payload(RoleUpdate, data).model_dump(exclude_unset=True)
        return await self.update(context, role_id, changes)

    async def delete_role(self, context: AuthContext, role_id) -> bool:
        return await self.delete(context, role_id)

    async def find_role_by_id(self, context: AuthContext, role_id) -> Optional[Role]:
        return await self.find_by_id(context, role_id)

    async def list_roles(self, context: AuthContext, options: Optional[QueryOptions] = None) -> PaginatedResult:
        return await self.find_all(context, options)

    @requires_staff_access()
    async def get_all_permissions(self, context: AuthContext) -> List[Dict[str, str]]:
        """Every grantable permission with a human-readable description."""
        self.require_permission(context, Action.READ)
        return [
            {"id": permission, "description": get_permission_description(permission)}
            for permission in ALL_PERMISSIONS + [SUPERADMIN, WILDCARD]
        ]

    @requires_staff_access()
    async def analyze_role_impact(
        self,
        context: AuthContext,
        role_id,
        new_permissions: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Describe who holds a role and what a permission change would do to them.

        Returns:
            Dict with role_id, role_name, affected_user_ids, current_permissions,
            conflicts and, when new_permissions is given, the added/removed
            lists and an impact severity
        """
        role = await self.load_authorized(context, role_id, Action.READ)
        current = list(role.permissions or [])
        affected: List[str] = []
        if self.user_repository is not None:
            affected = await self.user_repository.find_ids_by_role(role_id)

        analysis: Dict[str, Any] = {
            "role_id": str(role.id),
            "role_name": role.name,
            "affected_user_ids": affected,
            "current_permissions": current,
            "conflicts": get_permission_conflicts(current),
        }
        if new_permissions is not None:
            proposed = require_catalog_permissions(new_permissions)
            impact = analyze_permission_impact(current, proposed, affected)
            analysis.update({
                "new_permissions": proposed,
                "permissions_to_add": impact.gained_permissions,
                "permissions_to_remove": impact.lost_permissions,
                "severity": impact.severity,
            })
        return analysis

    async def _load_mutable(self, context: AuthContext, role_id) -> Role:
        role = await self.load_authorized(context, role_id, Action.UPDATE)
        self._reject_built_in(role, "Cannot modify permissions of built-in roles")
        return role

    async def _write_permissions(self, context: AuthContext, role: Role, permissions: List[str], operation: str) -> Role:
        added, removed, _ = compare_permissions(role.permissions or [], permissions)
        updated = await self.repository.update(role.id, {"permissions": permissions})
        self.log_operation(
            operation,
            context,
            {"entity_id": str(role.id), "added": added, "removed": removed},
        )
        return updated

    async def add_permissions_to_role(self, context: AuthContext, role_id, permissions: List[str]) -> Role:
        role = await self._load_mutable(context, role_id)
        permissions = require_catalog_permissions(permissions)
        merged = list(dict.fromkeys(list(role.permissions or []) + permissions))
        return await self._write_permissions(context, role, merged, "add_permissions_to_role")

    async def remove_permissions_from_role(self, context: AuthContext, role_id, permissions: List[str]) -> Role:
        role = await self._load_mutable(context, role_id)
        dropped = set(permissions)
        remaining = [p for p in (role.permissions or []) if p not in dropped]
        return await self._write_permissions(context, role, remaining, "remove_permissions_from_role")

    async def optimize_role_permissions(self, context: AuthContext, role_id) -> Role:
        """Collapse redundant grants (anything next to superadmin or *) and drop duplicates."""
        role = await self._load_mutable(context, role_id)
        current = list(role.permissions or [])
        optimized = optimize_permissions(current)
        if optimized == current:
            return role
        return await self._write_permissions(context, role, optimized, "optimize_role_permissions")

    async def bulk_permission_operation(
        self,
        context: AuthContext,
        data: Union[BulkPermissionOperation, Dict[str, Any]],
    ) -> BulkPermissionResult:
        """
        Apply add/remove/replace to several roles.

        The permission list is validated once up front; after that each role
        succeeds or fails on its own and failures are reported per role.
        """
        self.require_permission(context, Action.UPDATE)
        request = validate_payload(BulkPermissionOperation, data)
        if request.operation != "remove":
            require_catalog_permissions(request.permissions)

        handlers = {
            "add": self.add_permissions_to_role,
            "remove": self.remove_permissions_from_role,
            "replace": self._replace_permissions,
        }
        handler = handlers[request.operation]

        result = BulkPermissionResult()
        for role_id in request.role_ids:
            try:
                await handler(context, role_id, request.permissions)
            except HBMBaseError as e:
                result.failed.append({"role_id": role_id, "error": e.message})
            else:
                result.success.append(role_id)

        self.log_operation(
            "bulk_permission_operation",
            context,
            {
                "operation": request.operation,
                "role_count": len(request.role_ids),
                "success_count": len(result.success),
                "failed_count": len(result.failed),
            },
        )
        return result

    async def _replace_permissions(self, context: AuthContext, role_id, permissions: List[str]) -> Role:
        role = await self._load_mutable(context, role_id)
        return await self._write_permissions(
            context, role, require_catalog_permissions(permissions), "replace_permissions"
        )
