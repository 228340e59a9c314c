"""
Order Service

Customers may create orders for themselves and read their own orders.
Everything else (edits, lifecycle transitions, cancellation) is staff work
gated by orders:update. Orders are never deleted, only canceled.

Lifecycle writes go through the order state machine and are persisted with
a version compare-and-swap so two racing transitions cannot both land.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from hbm_service.core.audit_log import audit_operation
from hbm_service.core.auth_context import AuthContext, validate_customer_access, validate_staff_access
from hbm_service.core.config import settings
from hbm_service.core.exceptions import BusinessRuleViolationError, ValidationError
from hbm_service.core.permissions import Action, Resource
from hbm_service.core.utils import utcnow
from hbm_service import rules
from hbm_service.models import Order
from hbm_service.schemas.common import PaginatedResult, QueryOptions
from hbm_service.schemas.order import OrderCreate, OrderStatusResponse, OrderTransitionRequest, OrderUpdate
from hbm_service.services.base_service import AuthorizedService, PermissionResult, validate_payload
from hbm_service.status import order_status
from hbm_service.status.history import StatusHistoryRecorder
from hbm_service.status.order_status import OrderStatus

logger = logging.getLogger(__name__)

# Statuses from which cancel_order refuses even though the state machine would allow it
NON_CANCELABLE_STATUSES = (
    OrderStatus.COMPLETED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELED,
)

# Fixed at creation
IMMUTABLE_ORDER_FIELDS = frozenset({"customer_id", "order_type_id", "order_number"})


class OrderService(AuthorizedService[Order]):
    resource = Resource.ORDERS

    def __init__(
        self,
        repository,
        customer_repository,
        order_type_repository,
        variant_repository,
        history: Optional[StatusHistoryRecorder] = None,
    ):
        super().__init__(repository)
        self.customer_repository = customer_repository
        self.order_type_repository = order_type_repository
        self.variant_repository = variant_repository
        self.history = history

    @staticmethod
    def generate_order_number() -> str:
        """Generate unique order number in format ORD-YYYYMMDD-XXXXXXXX."""
        return (
            f"{settings.ORDER_NUMBER_PREFIX}-{datetime.now(timezone.utc).strftime('%Y%m%d')}"
            f"-{uuid.uuid4().hex[:8].upper()}"
        )

    def check_customer_permission(self, context: AuthContext, action: Action) -> PermissionResult:
        if action in (Action.READ, Action.CREATE):
            return PermissionResult(allowed=True)
        return PermissionResult(
            allowed=False,
            reason=f"Customers cannot perform {action.value} operations on orders",
        )

    def check_customer_access(self, context: AuthContext, entity: Order) -> bool:
        if context.is_customer:
            return context.user_id == str(entity.customer_id)
        return True

    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        return options.with_filters(customer_id=context.user_id)

    async def check_update_rules(self, context: AuthContext, entity: Order, data: Dict[str, Any]) -> None:
        touched = set(data) & (set(order_status.ORDER_STATUS_TIMESTAMP_FIELDS.values()) | IMMUTABLE_ORDER_FIELDS)
        if touched:
            raise ValidationError(
                "Order ownership, order type and lifecycle fields can only change through their dedicated operations",
                details={"fields": sorted(touched)},
            )

    async def check_delete_rules(self, context: AuthContext, entity: Order) -> None:
        raise BusinessRuleViolationError("Orders cannot be deleted, only canceled")

    async def create_order(self, context: AuthContext, data: Union[OrderCreate, Dict[str, Any]]) -> Order:
        """
        Create an order with its items.

        Args:
            context: Caller context
            data: Order payload; customer_id defaults to the caller for customers

        Returns:
            Created order

        Raises:
            PermissionDeniedError: If the caller may not create orders
            OwnershipViolationError: If a customer creates an order for someone else
            ValidationError: If items are missing/invalid, or the customer, order type or a variant does not exist
            BusinessRuleViolationError: If the items break the order type's rules
        """
        self.require_permission(context, Action.CREATE)
        payload = validate_payload(OrderCreate, data)

        customer_id = payload.customer_id
        if context.is_customer:
            customer_id = customer_id or context.user_id
            if customer_id != context.user_id:
                self.ensure_customer_access(context, Order(customer_id=customer_id), Action.CREATE)
        if not customer_id:
            raise ValidationError("Customer ID is required")

        if await self.customer_repository.find_by_id(customer_id) is None:
            raise ValidationError("Customer not found", details={"customer_id": customer_id})

        items = [item.model_dump() for item in payload.items]
        if payload.order_type_id or any(item["product_variant_id"] for item in items):
            await self._check_order_type_rules(payload.order_type_id, items)

        record = payload.model_dump(exclude={"items", "customer_id"})
        record.update({
            "customer_id": customer_id,
            "order_number": self.generate_order_number(),
            "created_by": context.user_id if context.is_staff else None,
        })

        order = await self.repository.create_with_items(record, items)
        self.log_operation(
            "create_order",
            context,
            {"entity_id": str(order.id), "order_number": order.order_number, "items": len(items)},
        )
        return order

    async def _check_order_type_rules(self, order_type_id, items: List[Dict[str, Any]]) -> None:
        """
        Order type policy for a new order's items.

        Raises:
            ValidationError: If the order type or a referenced variant is unknown or inactive
            BusinessRuleViolationError: If the items break the order type's rules
        """
        if not order_type_id:
            raise ValidationError("Items referencing product variants require an order type")

        order_type = await self.order_type_repository.find_by_id(order_type_id)
        if order_type is None:
            raise ValidationError("Order type not found", details={"order_type_id": order_type_id})
        if not order_type.is_active:
            raise ValidationError("Order type is not active", details={"order_type_id": order_type_id})

        variant_ids = list(dict.fromkeys(i["product_variant_id"] for i in items if i["product_variant_id"]))
        variants = {str(v.id): v for v in await self.variant_repository.find_with_products(variant_ids)}
        missing = [v for v in variant_ids if v not in variants or not variants[v].is_active]
        if missing:
            raise ValidationError("Unknown or inactive product variants", details={"product_variant_ids": missing})

        check = rules.validate_order_for_order_type(
            items,
            order_type,
            {variant_id: str(v.product_id) for variant_id, v in variants.items()},
        )
        for variant_id, variant in variants.items():
            if str(variant.product.order_type_id) != str(order_type.id):
                check.errors.append(f"Variant {variant_id} belongs to a product of another order type")
        check.raise_for_errors("Order violates order type rules", order_type=order_type.name)

    async def update_order(self, context: AuthContext, order_id, data: Union[OrderUpdate, Dict[str, Any]]) -> Order:
        """Edit non-lifecycle order fields (staff only)."""
        changes = validate_payload(OrderUpdate, data).model_dump(exclude_unset=True)
        return await self.update(context, order_id, changes)

    async def transition_order_status(
        self,
        context: AuthContext,
        order_id,
        request: Union[OrderTransitionRequest, Dict[str, Any]],
    ) -> Order:
        """
        Move an order along its lifecycle.

        The caller states the status it believes the order is in; the
        transition is rejected if that is stale or the step is not allowed.

        Raises:
            PermissionDeniedError: If the caller lacks orders:update (customers always)
            NotFoundError: If the order does not exist
            InvalidStateTransitionError: If the caller is stale or the step is illegal
            ConcurrentModificationError: If another transition landed first
        """
        request = validate_payload(OrderTransitionRequest, request)
        order = await self.load_authorized(context, order_id, Action.UPDATE)

        now = utcnow()
        order_status.validate_transition(order, request.from_status, request.to_status, now)
        data = order_status.transition_update(request.to_status, now)
        if request.notes:
            data["notes"] = _append_note(order.notes, request.notes)

        updated = await self.conditional_update(order_id, {"version": order.version}, data)

        order_status.log_transition(order_id, request.from_status, request.to_status, context.user_id)
        self._record(order_id, request.from_status, request.to_status, context, request.notes)
        self.log_operation(
            "transition_order_status",
            context,
            {
                "entity_id": str(order_id),
                "from_status": request.from_status.value,
                "to_status": request.to_status.value,
            },
        )
        return updated

    @audit_operation("orders.cancel_order")
    async def cancel_order(self, context: AuthContext, order_id, reason: Optional[str] = None) -> Order:
        """
        Cancel an order that has not finished production.

        Raises:
            BusinessRuleViolationError: If the order is completed, shipped, delivered or already canceled
        """
        order = await self.load_authorized(context, order_id, Action.UPDATE)

        now = utcnow()
        current = order_status.calculate_status(order, now)
        if current in NON_CANCELABLE_STATUSES:
            raise BusinessRuleViolationError(
                f"Order cannot be canceled from {current.value} status",
                details={"order_id": str(order_id), "status": current.value},
            )
        order_status.validate_transition(order, current, OrderStatus.CANCELED, now)

        data = order_status.transition_update(OrderStatus.CANCELED, now)
        if reason:
            data["notes"] = _append_note(order.notes, f"Canceled: {reason}")

        updated = await self.conditional_update(order_id, {"version": order.version}, data)
        order_status.log_transition(order_id, current, OrderStatus.CANCELED, context.user_id)
        self._record(order_id, current, OrderStatus.CANCELED, context, reason)
        return updated

    async def get_orders_by_customer(
        self,
        context: AuthContext,
        customer_id,
        options: Optional[QueryOptions] = None,
    ) -> PaginatedResult:
        self.require_permission(context, Action.READ)
        if context.is_customer and context.user_id != str(customer_id):
            self.ensure_customer_access(context, Order(customer_id=customer_id), Action.READ)
        options = self.scope_query(context, options).with_filters(customer_id=customer_id)
        return await self.repository.find_all(options)

    async def get_my_orders(self, context: AuthContext, options: Optional[QueryOptions] = None) -> PaginatedResult:
        validate_customer_access(context, operation="listing own orders")
        return await self.get_orders_by_customer(context, context.user_id, options)

    async def get_order_with_items(self, context: AuthContext, order_id) -> Optional[Order]:
        self.require_permission(context, Action.READ)
        order = await self.repository.find_with_items(order_id)
        if order is None:
            return None
        self.ensure_customer_access(context, order, Action.READ)
        return order

    async def get_order_status(self, context: AuthContext, order_id) -> OrderStatusResponse:
        order = await self.load_authorized(context, order_id, Action.READ)
        result = order_status.compute_order_status(order)
        return OrderStatusResponse(
            order_id=str(order.id),
            status=result.status,
            is_terminal=result.is_terminal,
            can_transition_to=result.can_transition_to,
            factors=result.factors,
            computed_at=result.computed_at,
        )

    async def get_orders_by_status(
        self,
        context: AuthContext,
        status: Union[OrderStatus, str],
        options: Optional[QueryOptions] = None,
    ) -> PaginatedResult:
        """
        Orders whose derived status matches (staff only).

        The status predicate runs in the query, so totals and paging count
        matching orders only.
        """
        self.require_permission(context, Action.READ)
        validate_staff_access(context, operation="filtering orders by status")
        try:
            status = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {status}", details={"status": str(status)})
        return await self.repository.find_by_status(status, utcnow(), self.scope_query(context, options))

    def _record(self, order_id, from_status, to_status, context: AuthContext, reason: Optional[str]):
        if self.history is None:
            return
        self.history.record(
            "order",
            order_id,
            OrderStatus(from_status).value,
            OrderStatus(to_status).value,
            changed_by=context.user_id,
            reason=reason,
        )


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note
