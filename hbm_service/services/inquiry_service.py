"""
Inquiry Service

Customers may submit and read their own inquiries. Staff edit, assign and
move them through the lifecycle. Anonymous visitors go through
submit_public_inquiry, which skips authorization entirely.
"""
import logging
from typing import Any, Dict, Optional, Union

from hbm_service.core.audit_log import log_service_operation
from hbm_service.core.auth_context import AuthContext, validate_customer_access, validate_staff_access
from hbm_service.core.exceptions import BusinessRuleViolationError, PermissionDeniedError, ValidationError
from hbm_service.core.permissions import Action, Resource, create_permission, has_permission
from hbm_service.core.utils import utcnow
from hbm_service.models import Inquiry
from hbm_service.schemas.common import PaginatedResult, QueryOptions
from hbm_service.schemas.inquiry import InquiryCreate, InquiryTransitionRequest, InquiryUpdate
from hbm_service.services.base_service import AuthorizedService, PermissionResult, validate_payload
from hbm_service.status import inquiry_status
from hbm_service.status.history import StatusHistoryRecorder
from hbm_service.status.inquiry_status import InquiryStatus

logger = logging.getLogger(__name__)


class InquiryService(AuthorizedService[Inquiry]):
    resource = Resource.INQUIRIES

    def __init__(self, repository, user_repository, history: Optional[StatusHistoryRecorder] = None):
        super().__init__(repository)
        self.user_repository = user_repository
        self.history = history

    def check_customer_permission(self, context: AuthContext, action: Action) -> PermissionResult:
        if action in (Action.READ, Action.CREATE):
            return PermissionResult(allowed=True)
        return PermissionResult(
            allowed=False,
            reason=f"Customers cannot perform {action.value} operations on inquiries",
        )

    def check_customer_access(self, context: AuthContext, entity: Inquiry) -> bool:
        if context.is_customer:
            return entity.customer_id is not None and context.user_id == str(entity.customer_id)
        return True

    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        return options.with_filters(customer_id=context.user_id)

    async def check_update_rules(self, context: AuthContext, entity: Inquiry, data: Dict[str, Any]) -> None:
        if "status" in data or set(data) & set(inquiry_status.INQUIRY_STATUS_TIMESTAMP_FIELDS.values()):
            raise ValidationError("Inquiry status can only change through a status transition")

    async def check_delete_rules(self, context: AuthContext, entity: Inquiry) -> None:
        if entity.status != InquiryStatus.NEW:
            raise BusinessRuleViolationError(
                "Only new inquiries can be deleted",
                details={"inquiry_id": str(entity.id), "status": inquiry_status.get_inquiry_status_label(entity.status)},
            )

    def _new_inquiry_record(self, payload: InquiryCreate) -> Dict[str, Any]:
        record = payload.model_dump()
        record["customer_email"] = str(payload.customer_email).lower()
        record["status"] = int(InquiryStatus.NEW)
        return record

    async def create_inquiry(self, context: AuthContext, data: Union[InquiryCreate, Dict[str, Any]]) -> Inquiry:
        """
        Create an inquiry in the new status.

        A customer always files for themselves; supplying another
        customer_id is rejected.

        Raises:
            PermissionDeniedError: If the caller may not create inquiries
            ValidationError: If the payload is invalid
        """
        self.require_permission(context, Action.CREATE)
        payload = validate_payload(InquiryCreate, data)

        if context.is_customer and payload.customer_id and payload.customer_id != context.user_id:
            raise ValidationError("Customers can only create inquiries for themselves")

        record = self._new_inquiry_record(payload)
        if context.is_customer:
            record["customer_id"] = context.user_id
        record["created_by"] = context.user_id if context.is_staff else None

        inquiry = await self.repository.create(record)
        self.log_operation("create_inquiry", context, {"entity_id": str(inquiry.id)})
        return inquiry

    async def submit_public_inquiry(self, data: Union[InquiryCreate, Dict[str, Any]]) -> Inquiry:
        """Anonymous contact-form submission. No context, no permission check."""
        payload = validate_payload(InquiryCreate, data)
        record = self._new_inquiry_record(payload)
        record.update({"customer_id": None, "created_by": None})

        inquiry = await self.repository.create(record)
        log_service_operation(
            "inquiries.submit_public_inquiry",
            None,
            self.entity_name,
            details={"entity_id": str(inquiry.id)},
        )
        return inquiry

    async def update_inquiry(self, context: AuthContext, inquiry_id, data: Union[InquiryUpdate, Dict[str, Any]]) -> Inquiry:
        changes = validate_payload(InquiryUpdate, data).model_dump(exclude_unset=True)
        if "customer_email" in changes and changes["customer_email"]:
            changes["customer_email"] = str(changes["customer_email"]).lower()
        return await self.update(context, inquiry_id, changes)

    async def assign_inquiry(self, context: AuthContext, inquiry_id, assigned_to: Optional[str]) -> Inquiry:
        """
        Assign an open inquiry to an active staff user, or unassign it with None.

        Raises:
            BusinessRuleViolationError: If the inquiry is closed or rejected
            ValidationError: If assigned_to is not an active staff user
            ConcurrentModificationError: If the inquiry changed after it was read
        """
        inquiry = await self.load_authorized(context, inquiry_id, Action.UPDATE)

        if inquiry_status.is_terminal_inquiry_status(inquiry.status):
            raise BusinessRuleViolationError(
                "Closed or rejected inquiries cannot be reassigned",
                details={"inquiry_id": str(inquiry_id), "status": inquiry_status.get_inquiry_status_label(inquiry.status)},
            )
        if assigned_to is not None:
            assignee = await self.user_repository.find_by_id(assigned_to)
            if assignee is None or not assignee.is_active:
                raise ValidationError("Assignee must be an active staff user", details={"assigned_to": assigned_to})

        updated = await self.conditional_update(
            inquiry_id,
            {"status": int(inquiry.status), "version": inquiry.version},
            {"assigned_to": assigned_to},
        )
        self.log_operation("assign_inquiry", context, {"entity_id": str(inquiry_id), "assigned_to": assigned_to})
        return updated

    async def transition_inquiry_status(
        self,
        context: AuthContext,
        inquiry_id,
        request: Union[InquiryTransitionRequest, Dict[str, Any]],
    ) -> Inquiry:
        """
        Move an inquiry along its lifecycle, stamping the matching timestamp.

        Raises:
            PermissionDeniedError: If the caller lacks inquiries:update (customers always)
            NotFoundError: If the inquiry does not exist
            InvalidStateTransitionError: If the caller is stale or the step is illegal
            ConcurrentModificationError: If the row changed after it was read
        """
        request = validate_payload(InquiryTransitionRequest, request)
        inquiry = await self.load_authorized(context, inquiry_id, Action.UPDATE)

        current = inquiry_status.validate_transition(inquiry, request.from_status, request.to_status)
        data = inquiry_status.transition_update(request.to_status, utcnow())

        updated = await self.conditional_update(
            inquiry_id,
            {"status": int(current), "version": inquiry.version},
            data,
        )

        inquiry_status.log_transition(inquiry_id, current, request.to_status, context.user_id)
        if self.history is not None:
            self.history.record(
                "inquiry",
                inquiry_id,
                current.name.lower(),
                request.to_status.name.lower(),
                changed_by=context.user_id,
                reason=request.notes,
            )
        self.log_operation(
            "transition_inquiry_status",
            context,
            {"entity_id": str(inquiry_id), "from_status": int(current), "to_status": int(request.to_status)},
        )
        return updated

    async def get_inquiries_by_customer(
        self,
        context: AuthContext,
        customer_id,
        options: Optional[QueryOptions] = None,
    ) -> PaginatedResult:
        self.require_permission(context, Action.READ)
        if context.is_customer and context.user_id != str(customer_id):
            self.ensure_customer_access(context, Inquiry(customer_id=customer_id), Action.READ)
        options = self.scope_query(context, options).with_filters(customer_id=customer_id)
        return await self.repository.find_all(options)

    async def get_assigned_inquiries(
        self,
        context: AuthContext,
        staff_id,
        options: Optional[QueryOptions] = None,
    ) -> PaginatedResult:
        """Inquiries assigned to staff_id. Looking at someone else's queue needs inquiries:manage."""
        self.require_permission(context, Action.READ)
        validate_staff_access(context, operation="viewing assigned inquiries")

        manage = create_permission(Resource.INQUIRIES, Action.MANAGE)
        if context.user_id != str(staff_id) and not has_permission(context.permissions, manage):
            raise PermissionDeniedError(
                "You can only view inquiries assigned to you",
                required_permissions=[manage],
                resource=self.resource.value,
                action=Action.READ.value,
            )

        options = self.scope_query(context, options).with_filters(assigned_to=staff_id)
        return await self.repository.find_all(options)

    async def get_inquiries_by_status(
        self,
        context: AuthContext,
        status: Union[InquiryStatus, int, str],
        options: Optional[QueryOptions] = None,
    ) -> PaginatedResult:
        self.require_permission(context, Action.READ)
        validate_staff_access(context, operation="filtering inquiries by status")
        status = inquiry_status.to_inquiry_status(status)
        options = self.scope_query(context, options).with_filters(status=int(status))
        return await self.repository.find_all(options)

    async def get_my_inquiries(self, context: AuthContext, options: Optional[QueryOptions] = None) -> PaginatedResult:
        validate_customer_access(context, operation="listing own inquiries")
        return await self.get_inquiries_by_customer(context, context.user_id, options)

    async def get_inquiry_statistics(self, context: AuthContext) -> Dict[str, int]:
        """Count of inquiries per status label, plus a total."""
        self.require_permission(context, Action.READ)
        validate_staff_access(context, operation="inquiry statistics")

        stats: Dict[str, int] = {}
        for status in InquiryStatus:
            stats[status.label] = await self.repository.count({"status": int(status)})
        stats["total"] = sum(stats.values())
        return stats
