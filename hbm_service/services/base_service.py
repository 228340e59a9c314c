"""
Base authorized service

Every entity service extends AuthorizedService. Within a call the order is
always: permission check -> entity load -> ownership check -> validation /
state machine -> repository write. Nothing is written unless every check
before it passed.

Hooks for subclasses:
- check_customer_permission(context, action): action allow-list for customers
- check_customer_access(context, entity): does this row belong to the caller
- apply_customer_filters(context, options): ownership filter for list queries
- check_create_rules / check_update_rules / check_delete_rules: business rules
  (protected rows, immutable fields, lifecycle-owned columns). Always run.
- validate_create / validate_update / validate_delete: input checks that
  ServiceOptions(skip_validation=True) may skip.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from hbm_service.core.audit_log import log_service_operation
from hbm_service.core.auth_context import AuthContext, validate_authentication
from hbm_service.core.config import settings
from hbm_service.core.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    OwnershipViolationError,
    PermissionDeniedError,
    ValidationError,
)
from hbm_service.core.permissions import (
    Action,
    Resource,
    has_resource_permission,
    satisfying_permissions,
)
from hbm_service.schemas.common import PaginatedResult, QueryOptions

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")
SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass(frozen=True)
class PermissionResult:
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class ServiceOptions:
    """Per-call options for the generic CRUD paths. Authorization and business rules are never skippable."""
    skip_validation: bool = False


def validate_payload(schema: Type[SchemaT], data: Union[SchemaT, Dict[str, Any]]) -> SchemaT:
    """
    Coerce caller input into a schema instance.

    Raises:
        ValidationError: If the input does not satisfy the schema
    """
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError(
            f"Invalid {schema.__name__}: " + "; ".join(f"{x['field']}: {x['message']}" for x in errors),
            details={"errors": errors},
        )


class AuthorizedService(ABC, Generic[ModelT]):
    """
    Generic service enforcing permission and ownership checks around a repository.

    Staff contexts are authorized through the permission catalog; customer
    contexts through check_customer_permission plus per-row ownership.
    """

    resource: Resource
    entity_name: Optional[str] = None  # label for logs and NotFoundError, defaults to the resource

    def __init__(self, repository):
        self.repository = repository
        if self.entity_name is None:
            self.entity_name = self.resource.value

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def catalog_action(self, action: Action) -> Action:
        """Catalog action a staff caller needs for action on this service."""
        return Action(action)

    def check_permission(self, context: AuthContext, action: Action) -> PermissionResult:
        if context.is_staff:
            needed = self.catalog_action(action)
            if has_resource_permission(context.permissions, self.resource, needed):
                return PermissionResult(allowed=True)
            return PermissionResult(
                allowed=False,
                reason=f"Missing permission: {self.resource.value}:{needed.value}",
            )
        if context.is_customer:
            return self.check_customer_permission(context, Action(action))
        return PermissionResult(allowed=False, reason="Invalid user type")

    def check_customer_permission(self, context: AuthContext, action: Action) -> PermissionResult:
        """Customers have no access unless a service opts in."""
        return PermissionResult(
            allowed=False,
            reason=f"Customers do not have access to {self.resource.value}",
        )

    def require_permission(self, context: AuthContext, action: Action) -> None:
        """
        Raise unless the caller may attempt action on this service's resource.

        Raises:
            AuthenticationError: If the context is missing
            PermissionDeniedError: If the check fails
        """
        validate_authentication(context)
        action = Action(action)
        result = self.check_permission(context, action)
        if not result.allowed:
            required = (
                satisfying_permissions(self.resource, self.catalog_action(action))
                if context.is_staff else []
            )
            self.log_operation(
                f"{action.value}.denied", context, {"reason": result.reason}, success=False
            )
            raise PermissionDeniedError(
                result.reason or "Permission denied",
                required_permissions=required,
                resource=self.resource.value,
                action=action.value,
            )

    @abstractmethod
    def check_customer_access(self, context: AuthContext, entity: ModelT) -> bool:
        """True if the context is staff or owns the entity."""

    @abstractmethod
    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        """Return options restricted to rows owned by a customer context."""

    def ensure_customer_access(self, context: AuthContext, entity: ModelT, action: Action = Action.READ) -> None:
        if context.is_customer and not self.check_customer_access(context, entity):
            entity_id = getattr(entity, "id", None)
            self.log_operation(
                f"{Action(action).value}.ownership_denied",
                context,
                {"entity_id": str(entity_id)},
                success=False,
            )
            raise OwnershipViolationError(
                resource=self.entity_name,
                entity_id=entity_id,
                action=Action(action).value,
            )

    def scope_query(self, context: AuthContext, options: Optional[QueryOptions]) -> QueryOptions:
        options = options or QueryOptions()
        if options.limit > settings.MAX_PAGE_SIZE:
            options = options.model_copy(update={"limit": settings.MAX_PAGE_SIZE})
        if context.is_customer:
            options = self.apply_customer_filters(context, options)
        return options

    # ------------------------------------------------------------------
    # Business rule hooks (never skipped)
    # ------------------------------------------------------------------

    async def check_create_rules(self, context: AuthContext, data: Dict[str, Any]) -> None:
        pass

    async def check_update_rules(self, context: AuthContext, entity: ModelT, data: Dict[str, Any]) -> None:
        pass

    async def check_delete_rules(self, context: AuthContext, entity: ModelT) -> None:
        pass

    # ------------------------------------------------------------------
    # Validation hooks
    # ------------------------------------------------------------------

    async def validate_create(self, context: AuthContext, data: Dict[str, Any]) -> None:
        pass

    async def validate_update(self, context: AuthContext, entity: ModelT, data: Dict[str, Any]) -> None:
        pass

    async def validate_delete(self, context: AuthContext, entity: ModelT) -> None:
        pass

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def log_operation(
        self,
        operation: str,
        context: Optional[AuthContext],
        details: Optional[dict] = None,
        success: bool = True,
    ) -> None:
        log_service_operation(
            f"{self.entity_name}.{operation}",
            context,
            self.entity_name,
            details=details,
            success=success,
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, entity_id) -> ModelT:
        entity = await self.repository.find_by_id(entity_id)
        if entity is None:
            raise NotFoundError(self.entity_name, entity_id)
        return entity

    async def load_authorized(self, context: AuthContext, entity_id, action: Action) -> ModelT:
        """Permission check, load, then ownership check."""
        self.require_permission(context, action)
        entity = await self.load(entity_id)
        self.ensure_customer_access(context, entity, action)
        return entity

    async def conditional_update(self, entity_id, expected: Dict[str, Any], data: Dict[str, Any]) -> ModelT:
        """
        Write data only if the row still matches expected.

        Raises:
            ConcurrentModificationError: If another writer got there first
        """
        updated = await self.repository.update_where(entity_id, expected, data)
        if updated is None:
            logger.warning(
                f"Conditional update lost on {self.entity_name}/{entity_id} (expected {expected})"
            )
            raise ConcurrentModificationError(
                f"{self.entity_name} {entity_id} was modified concurrently; reload and retry",
                details={"entity_id": str(entity_id)},
            )
        return updated

    # ------------------------------------------------------------------
    # Generic CRUD
    # ------------------------------------------------------------------

    async def create(
        self,
        context: AuthContext,
        data: Dict[str, Any],
        options: Optional[ServiceOptions] = None,
    ) -> ModelT:
        options = options or ServiceOptions()
        self.require_permission(context, Action.CREATE)
        await self.check_create_rules(context, data)
        if not options.skip_validation:
            await self.validate_create(context, data)

        entity = await self.repository.create(data)
        self.log_operation("create", context, {"entity_id": str(getattr(entity, "id", None))})
        return entity

    async def find_by_id(self, context: AuthContext, entity_id) -> Optional[ModelT]:
        self.require_permission(context, Action.READ)
        entity = await self.repository.find_by_id(entity_id)
        if entity is None:
            return None
        self.ensure_customer_access(context, entity, Action.READ)
        return entity

    async def get_by_id(self, context: AuthContext, entity_id) -> ModelT:
        """Like find_by_id, but raises NotFoundError when absent."""
        return await self.load_authorized(context, entity_id, Action.READ)

    async def find_all(self, context: AuthContext, options: Optional[QueryOptions] = None) -> PaginatedResult:
        self.require_permission(context, Action.READ)
        return await self.repository.find_all(self.scope_query(context, options))

    async def update(
        self,
        context: AuthContext,
        entity_id,
        data: Dict[str, Any],
        options: Optional[ServiceOptions] = None,
    ) -> ModelT:
        options = options or ServiceOptions()
        entity = await self.load_authorized(context, entity_id, Action.UPDATE)
        await self.check_update_rules(context, entity, data)
        if not options.skip_validation:
            await self.validate_update(context, entity, data)

        updated = await self.repository.update(entity_id, data)
        self.log_operation("update", context, {"entity_id": str(entity_id), "fields": sorted(data)})
        return updated

    async def delete(
        self,
        context: AuthContext,
        entity_id,
        options: Optional[ServiceOptions] = None,
    ) -> bool:
        options = options or ServiceOptions()
        entity = await self.load_authorized(context, entity_id, Action.DELETE)
        await self.check_delete_rules(context, entity)
        if not options.skip_validation:
            await self.validate_delete(context, entity)

        deleted = await self.repository.delete(entity_id)
        self.log_operation("delete", context, {"entity_id": str(entity_id)})
        return deleted
