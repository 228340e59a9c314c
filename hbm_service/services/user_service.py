"""
User Service

Staff accounts. Customers never reach these records: every customer
permission check is denied and list scoping refuses outright.
"""
import logging
from typing import Any, Dict, Optional, Union

from hbm_service.core.auth_context import AuthContext, validate_staff_access
from hbm_service.core.exceptions import PermissionDeniedError, ValidationError
from hbm_service.core.password_policy import PasswordPolicy, hash_password, verify_password
from hbm_service.core.permissions import Action, Resource, create_permission, has_permission
from hbm_service.core.utils import utcnow
from hbm_service.models import User
from hbm_service.schemas.common import PaginatedResult, QueryOptions
from hbm_service.schemas.user import PasswordChange, UserCreate, UserUpdate
from hbm_service.services.base_service import AuthorizedService, validate_payload

logger = logging.getLogger(__name__)

USERS_MANAGE = create_permission(Resource.USERS, Action.MANAGE)


def _require_strong_password(password: str) -> None:
    is_valid, errors = PasswordPolicy.validate(password)
    if not is_valid:
        raise ValidationError(errors[0], details={"errors": errors})


class UserService(AuthorizedService[User]):
    resource = Resource.USERS

    def __init__(self, repository, role_repository):
        super().__init__(repository)
        self.role_repository = role_repository

    def check_customer_access(self, context: AuthContext, entity: User) -> bool:
        return False

    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        raise PermissionDeniedError(
            "Customers cannot access user records",
            resource=self.resource.value,
            action=Action.READ.value,
        )

    async def check_delete_rules(self, context: AuthContext, entity: User) -> None:
        if context.user_id == str(entity.id):
            raise ValidationError("You cannot delete your own account")

    def _require_manage_for_others(self, context: AuthContext, user_id, message: str) -> None:
        if context.user_id != str(user_id) and not has_permission(context.permissions, USERS_MANAGE):
            raise PermissionDeniedError(
                message,
                required_permissions=[USERS_MANAGE],
                resource=self.resource.value,
                action=Action.MANAGE.value,
            )

    async def _require_role(self, role_id) -> None:
        if await self.role_repository.find_by_id(role_id) is None:
            raise ValidationError("Invalid role ID", details={"role_id": role_id})

    async def create_user(self, context: AuthContext, data: Union[UserCreate, Dict[str, Any]]) -> User:
        """
        Create a staff account.

        Raises:
            PermissionDeniedError: If the caller lacks users:create
            ValidationError: If the payload is invalid, the password is weak,
                the email is taken, or the role does not exist
        """
        self.require_permission(context, Action.CREATE)
        payload = validate_payload(UserCreate, data)
        _require_strong_password(payload.password)

        email = payload.email.lower()
        if await self.repository.find_by_email(email):
            raise ValidationError("Email already exists", details={"email": email})
        if payload.role_id:
            await self._require_role(payload.role_id)

        record = payload.model_dump(exclude={"password"})
        record["email"] = email
        record["hashed_password"] = hash_password(payload.password)

        user = await self.repository.create(record)
        self.log_operation("create_user", context, {"entity_id": str(user.id)})
        return user

    async def update_user(self, context: AuthContext, user_id, data: Union[UserUpdate, Dict[str, Any]]) -> User:
        """Edit a staff account. Editing anyone but yourself needs users:manage."""
        user = await self.load_authorized(context, user_id, Action.UPDATE)
        self._require_manage_for_others(context, user_id, "You can only edit your own profile")

        changes = validate_payload(UserUpdate, data).model_dump(exclude_unset=True)

        new_email = changes.get("email")
        if new_email:
            new_email = new_email.lower()
            changes["email"] = new_email
            if new_email != user.email and await self.repository.find_by_email(new_email):
                raise ValidationError("Email already exists", details={"email": new_email})

        role_id = changes.get("role_id")
        if role_id and role_id != user.role_id:
            await self._require_role(role_id)

        if not changes:
            return user

        updated = await self.repository.update(user_id, changes)
        self.log_operation("update_user", context, {"entity_id": str(user_id), "fields": sorted(changes)})
        return updated

    async def change_password(
        self,
        context: AuthContext,
        user_id,
        data: Union[PasswordChange, Dict[str, Any]],
    ) -> bool:
        """
        Set a new password.

        Changing your own password requires the current one. Changing
        someone else's requires users:manage.
        """
        validate_staff_access(context, operation="password change")
        is_self = context.user_id == str(user_id)
        if not is_self:
            self.require_permission(context, Action.MANAGE)

        payload = validate_payload(PasswordChange, data)
        user = await self.load(user_id)

        if is_self and not verify_password(payload.current_password or "", user.hashed_password):
            raise ValidationError("Current password is incorrect")

        _require_strong_password(payload.new_password)

        await self.repository.update(
            user_id,
            {"hashed_password": hash_password(payload.new_password), "password_changed_at": utcnow()},
        )
        self.log_operation("change_password", context, {"entity_id": str(user_id), "self_service": is_self})
        return True

    async def toggle_user_status(self, context: AuthContext, user_id, is_active: bool) -> User:
        self.require_permission(context, Action.UPDATE)
        if context.user_id == str(user_id) and not is_active:
            raise ValidationError("You cannot deactivate your own account")
        await self.load(user_id)

        updated = await self.repository.update(user_id, {"is_active": is_active})
        self.log_operation("toggle_user_status", context, {"entity_id": str(user_id), "is_active": is_active})
        return updated

    async def find_by_email(self, context: AuthContext, email: str) -> Optional[User]:
        self.require_permission(context, Action.READ)
        return await self.repository.find_by_email(email.lower())

    async def find_by_role(self, context: AuthContext, role_id, options: Optional[QueryOptions] = None) -> PaginatedResult:
        self.require_permission(context, Action.READ)
        options = self.scope_query(context, options).with_filters(role_id=role_id)
        return await self.repository.find_all(options)
