"""
Customer Service

Staff manage customer records; a customer may read and update only their
own record, and only the profile fields.
"""
import logging
from typing import Any, Dict, Optional, Union

from hbm_service.core.auth_context import AuthContext, validate_customer_access, validate_staff_access
from hbm_service.core.exceptions import ValidationError
from hbm_service.core.permissions import Action, Resource
from hbm_service.models import Customer
from hbm_service.schemas.common import QueryOptions
from hbm_service.schemas.customer import CustomerCreate, CustomerProfileUpdate, CustomerUpdate
from hbm_service.services.base_service import AuthorizedService, PermissionResult, validate_payload

logger = logging.getLogger(__name__)


class CustomerService(AuthorizedService[Customer]):
    resource = Resource.CUSTOMERS

    def check_customer_permission(self, context: AuthContext, action: Action) -> PermissionResult:
        if action in (Action.READ, Action.UPDATE):
            return PermissionResult(allowed=True)
        return PermissionResult(
            allowed=False,
            reason=f"Customers cannot perform {action.value} operations on customer records",
        )

    def check_customer_access(self, context: AuthContext, entity: Customer) -> bool:
        if context.is_customer:
            return context.user_id == str(entity.id)
        return True

    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        return options.with_filters(id=context.user_id)

    async def create_customer(
        self,
        context: AuthContext,
        data: Union[CustomerCreate, Dict[str, Any]],
    ) -> Customer:
        """
        Create a customer record (staff only).

        Raises:
            PermissionDeniedError: If the caller lacks customers:create
            ValidationError: If the payload is invalid or the email is taken
        """
        self.require_permission(context, Action.CREATE)
        payload = validate_payload(CustomerCreate, data)

        email = payload.email.lower()
        if await self.repository.find_by_email(email):
            raise ValidationError("Email already exists", details={"email": email})

        record = payload.model_dump()
        record["email"] = email
        record["created_by"] = context.user_id

        customer = await self.repository.create(record)
        self.log_operation("create_customer", context, {"entity_id": str(customer.id)})
        return customer

    async def update_customer(
        self,
        context: AuthContext,
        customer_id,
        data: Union[CustomerUpdate, CustomerProfileUpdate, Dict[str, Any]],
    ) -> Customer:
        customer = await self.load_authorized(context, customer_id, Action.UPDATE)

        schema = CustomerProfileUpdate if context.is_customer else CustomerUpdate
        changes = validate_payload(schema, data).model_dump(exclude_unset=True)

        new_email = changes.get("email")
        if new_email:
            new_email = new_email.lower()
            changes["email"] = new_email
            if new_email != customer.email and await self.repository.find_by_email(new_email):
                raise ValidationError("Email already exists", details={"email": new_email})

        if not changes:
            return customer

        updated = await self.repository.update(customer_id, changes)
        self.log_operation("update_customer", context, {"entity_id": str(customer_id), "fields": sorted(changes)})
        return updated

    async def find_by_email(self, context: AuthContext, email: str) -> Optional[Customer]:
        self.require_permission(context, Action.READ)
        validate_staff_access(context, operation="customer lookup by email")
        return await self.repository.find_by_email(email.lower())

    async def toggle_customer_status(self, context: AuthContext, customer_id, is_active: bool) -> Customer:
        self.require_permission(context, Action.UPDATE)
        validate_staff_access(context, operation="changing customer account status")
        await self.load(customer_id)

        updated = await self.repository.update(customer_id, {"is_active": is_active})
        self.log_operation("toggle_customer_status", context, {"entity_id": str(customer_id), "is_active": is_active})
        return updated

    async def get_my_profile(self, context: AuthContext) -> Customer:
        validate_customer_access(context, operation="profile access")
        return await self.get_by_id(context, context.user_id)

    async def update_my_profile(
        self,
        context: AuthContext,
        data: Union[CustomerProfileUpdate, Dict[str, Any]],
    ) -> Customer:
        """Customer self-service update; email and account status are not editable here."""
        validate_customer_access(context, operation="profile update")
        return await self.update_customer(context, context.user_id, validate_payload(CustomerProfileUpdate, data))
