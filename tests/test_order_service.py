"""
Tests for OrderService.
"""
import re
import pytest

from hbm_service.core.auth_context import create_auth_context
from hbm_service.core.exceptions import (
    BusinessRuleViolationError,
    ConcurrentModificationError,
    InvalidStateTransitionError,
    NotFoundError,
    OwnershipViolationError,
    PermissionDeniedError,
    ValidationError,
)
from hbm_service.schemas.common import PaginatedResult
from hbm_service.services.base_service import ServiceOptions
from hbm_service.services.order_service import OrderService
from hbm_service.status.history import StatusHistoryRecorder
from hbm_service.status.order_status import OrderStatus, calculate_status

from conftest import T0, at, make_customer, make_order, make_order_type, make_product, make_repository, make_variant


@pytest.fixture
def customer_repository():
    repo = make_repository()
    repo.find_by_id.return_value = make_customer()
    return repo


@pytest.fixture
def history():
    return StatusHistoryRecorder()


@pytest.fixture
def order_type_repository():
    repo = make_repository()
    repo.find_by_id.return_value = make_order_type()
    return repo


@pytest.fixture
def variant_repository():
    repo = make_repository()
    repo.find_with_products.return_value = []
    return repo


@pytest.fixture
def service(repository, customer_repository, order_type_repository, variant_repository, history):
    return OrderService(repository, customer_repository, order_type_repository, variant_repository, history)


def echo_update_where(order):
    """update_where double that applies the data to order and bumps version."""
    async def _update_where(entity_id, expected, data):
        for name, value in data.items():
            setattr(order, name, value)
        order.version = (order.version or 0) + 1
        return order
    return _update_where


ORDER_PAYLOAD = {
    "items": [{"item_name": "Mailer box", "quantity": 500, "specifications": {"color": "kraft"}}],
    "notes": "Rush please",
}


class TestCreateOrder:

    @pytest.mark.asyncio
    async def test_customer_creates_for_self(self, service, repository, customer_repository, customer_context):
        repository.create_with_items.return_value = make_order(id="order-9")

        order = await service.create_order(customer_context, ORDER_PAYLOAD)

        assert order.id == "order-9"
        record, items = repository.create_with_items.await_args.args
        assert record["customer_id"] == "cust-1"
        assert record["created_by"] is None
        assert re.match(r"^ORD-\d{8}-[0-9A-F]{8}$", record["order_number"])
        assert items == [{
            "product_variant_id": None,
            "item_name": "Mailer box",
            "item_description": None,
            "quantity": 500,
            "specifications": {"color": "kraft"},
        }]
        customer_repository.find_by_id.assert_awaited_once_with("cust-1")

    @pytest.mark.asyncio
    async def test_customer_cannot_order_for_someone_else(self, service, repository, customer_context):
        with pytest.raises(OwnershipViolationError):
            await service.create_order(customer_context, {**ORDER_PAYLOAD, "customer_id": "cust-2"})
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_staff_must_name_customer(self, service, admin_context):
        with pytest.raises(ValidationError):
            await service.create_order(admin_context, ORDER_PAYLOAD)

    @pytest.mark.asyncio
    async def test_staff_creates_for_customer(self, service, repository, admin_context):
        repository.create_with_items.return_value = make_order()
        await service.create_order(admin_context, {**ORDER_PAYLOAD, "customer_id": "cust-1"})
        record, _ = repository.create_with_items.await_args.args
        assert record["created_by"] == "admin-1"

    @pytest.mark.asyncio
    async def test_unknown_customer(self, service, repository, customer_repository, admin_context):
        customer_repository.find_by_id.return_value = None
        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(admin_context, {**ORDER_PAYLOAD, "customer_id": "ghost"})
        assert exc_info.value.message == "Customer not found"
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("items", [
        [],
        [{"item_name": "Box", "quantity": 0}],
        [{"item_name": "", "quantity": 1}],
    ])
    async def test_invalid_items(self, service, customer_context, items):
        with pytest.raises(ValidationError):
            await service.create_order(customer_context, {"items": items})

    @pytest.mark.asyncio
    async def test_staff_without_create(self, service, staff_context):
        with pytest.raises(PermissionDeniedError):
            await service.create_order(staff_context, {**ORDER_PAYLOAD, "customer_id": "cust-1"})


def typed_payload(order_type_id="type-white", *variant_ids):
    items = [
        {"item_name": f"Box {i}", "quantity": 100, "product_variant_id": variant_id}
        for i, variant_id in enumerate(variant_ids or [None], start=1)
    ]
    return {"customer_id": "cust-1", "order_type_id": order_type_id, "items": items}


PRIVATE_LABEL = dict(id="type-private", name="Private Label", supports_products=False, supports_variable_products=False)
FABRIC = dict(id="type-fabric", name="Fabric", supports_products=True, supports_variable_products=False)


class TestOrderTypeRules:

    @pytest.mark.asyncio
    async def test_white_label_with_variant(self, service, repository, variant_repository, admin_context):
        variant_repository.find_with_products.return_value = [make_variant()]
        repository.create_with_items.return_value = make_order()

        await service.create_order(admin_context, typed_payload("type-white", "var-1"))

        variant_repository.find_with_products.assert_awaited_once_with(["var-1"])
        record, items = repository.create_with_items.await_args.args
        assert record["order_type_id"] == "type-white"
        assert items[0]["product_variant_id"] == "var-1"

    @pytest.mark.asyncio
    async def test_white_label_requires_variants(self, service, repository, admin_context):
        with pytest.raises(BusinessRuleViolationError) as exc_info:
            await service.create_order(admin_context, typed_payload("type-white"))
        assert exc_info.value.details["errors"] == [
            "Order item 1: White Label orders must have product variant associations"
        ]
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_private_label_without_variants(self, service, repository, order_type_repository, admin_context):
        order_type_repository.find_by_id.return_value = make_order_type(**PRIVATE_LABEL)
        repository.create_with_items.return_value = make_order()
        await service.create_order(admin_context, typed_payload("type-private"))
        repository.create_with_items.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order_type", [PRIVATE_LABEL, FABRIC])
    async def test_variants_rejected(self, service, repository, order_type_repository, variant_repository, admin_context, order_type):
        order_type_repository.find_by_id.return_value = make_order_type(**order_type)
        variant_repository.find_with_products.return_value = [
            make_variant(make_product(order_type_id=order_type["id"]))
        ]
        with pytest.raises(BusinessRuleViolationError) as exc_info:
            await service.create_order(admin_context, typed_payload(order_type["id"], "var-1"))
        assert exc_info.value.details["errors"] == [
            f"Order item 1: {order_type['name']} orders cannot have product variant associations"
        ]
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_order_type(self, service, repository, order_type_repository, admin_context):
        order_type_repository.find_by_id.return_value = None
        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(admin_context, typed_payload("ghost"))
        assert exc_info.value.message == "Order type not found"
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_inactive_order_type(self, service, order_type_repository, admin_context):
        order_type_repository.find_by_id.return_value = make_order_type(is_active=False)
        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(admin_context, typed_payload("type-white", "var-1"))
        assert exc_info.value.message == "Order type is not active"

    @pytest.mark.asyncio
    async def test_unknown_or_inactive_variant(self, service, repository, variant_repository, admin_context):
        variant_repository.find_with_products.return_value = [make_variant(id="var-2", is_active=False)]
        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(admin_context, typed_payload("type-white", "var-1", "var-2"))
        assert exc_info.value.details["product_variant_ids"] == ["var-1", "var-2"]
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_variant_from_another_order_type(self, service, repository, variant_repository, admin_context):
        variant_repository.find_with_products.return_value = [
            make_variant(make_product(order_type_id="type-fabric"))
        ]
        with pytest.raises(BusinessRuleViolationError) as exc_info:
            await service.create_order(admin_context, typed_payload("type-white", "var-1"))
        assert exc_info.value.details["errors"] == ["Variant var-1 belongs to a product of another order type"]
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_variants_require_order_type(self, service, repository, order_type_repository, admin_context):
        with pytest.raises(ValidationError):
            await service.create_order(admin_context, typed_payload(None, "var-1"))
        order_type_repository.find_by_id.assert_not_called()
        repository.create_with_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_several_products_only_warn(self, service, repository, variant_repository, admin_context, caplog):
        variant_repository.find_with_products.return_value = [
            make_variant(id="var-1"),
            make_variant(make_product(id="prod-2"), id="var-2", variant_identifier="OTHER"),
        ]
        repository.create_with_items.return_value = make_order()

        await service.create_order(admin_context, typed_payload("type-white", "var-1", "var-2"))

        repository.create_with_items.assert_awaited_once()
        assert "multiple different products" in caplog.text

    @pytest.mark.asyncio
    async def test_order_type_is_fixed_after_creation(self, service, repository, admin_context):
        repository.find_by_id.return_value = make_order()
        with pytest.raises(ValidationError) as exc_info:
            await service.update(admin_context, "order-1", {"order_type_id": "type-fabric"})
        assert exc_info.value.details == {"fields": ["order_type_id"]}
        repository.update.assert_not_called()


class TestTransitionOrderStatus:

    @pytest.mark.asyncio
    async def test_requested_to_quoted(self, service, repository, history):
        context = create_auth_context("staff-7", "staff", "staff", ["orders:update"])
        order = make_order()
        repository.find_by_id.return_value = order
        repository.update_where.side_effect = echo_update_where(order)

        updated = await service.transition_order_status(
            context, "order-1", {"from_status": "requested", "to_status": "quoted"}
        )

        assert updated.quoted_at is not None
        assert calculate_status(updated) == OrderStatus.QUOTED
        entity_id, expected, data = repository.update_where.await_args.args
        assert expected == {"version": 1}
        assert list(data) == ["quoted_at"]
        change = history.get_last_change("order", "order-1")
        assert (change.from_status, change.to_status, change.changed_by) == ("requested", "quoted", "staff-7")

    @pytest.mark.asyncio
    async def test_quoted_to_canceled_is_allowed(self, service, repository, staff_context):
        order = make_order(quoted_at=T0)
        repository.find_by_id.return_value = order
        repository.update_where.side_effect = echo_update_where(order)

        updated = await service.transition_order_status(
            staff_context, "order-1", {"from_status": "quoted", "to_status": "canceled"}
        )
        assert calculate_status(updated) == OrderStatus.CANCELED

    @pytest.mark.asyncio
    async def test_stale_from_status(self, service, repository, staff_context):
        repository.find_by_id.return_value = make_order(quoted_at=T0, confirmed_at=at(1))
        with pytest.raises(InvalidStateTransitionError):
            await service.transition_order_status(
                staff_context, "order-1", {"from_status": "quoted", "to_status": "confirmed"}
            )
        repository.update_where.assert_not_called()

    @pytest.mark.asyncio
    async def test_illegal_edge(self, service, repository, staff_context):
        repository.find_by_id.return_value = make_order()
        with pytest.raises(InvalidStateTransitionError):
            await service.transition_order_status(
                staff_context, "order-1", {"from_status": "requested", "to_status": "shipped"}
            )
        repository.update_where.assert_not_called()

    @pytest.mark.asyncio
    async def test_customer_cannot_transition(self, service, repository, customer_context):
        with pytest.raises(PermissionDeniedError):
            await service.transition_order_status(
                customer_context, "order-1", {"from_status": "requested", "to_status": "quoted"}
            )
        repository.find_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_read_only_staff(self, service, repository, read_only_context):
        with pytest.raises(PermissionDeniedError) as exc_info:
            await service.transition_order_status(
                read_only_context, "order-1", {"from_status": "requested", "to_status": "quoted"}
            )
        assert "orders:update" in exc_info.value.required_permissions

    @pytest.mark.asyncio
    async def test_lost_race(self, service, repository, staff_context, history):
        repository.find_by_id.return_value = make_order()
        repository.update_where.return_value = None
        with pytest.raises(ConcurrentModificationError):
            await service.transition_order_status(
                staff_context, "order-1", {"from_status": "requested", "to_status": "quoted"}
            )
        assert len(history) == 0

    @pytest.mark.asyncio
    async def test_missing_order(self, service, repository, staff_context):
        repository.find_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await service.transition_order_status(
                staff_context, "nope", {"from_status": "requested", "to_status": "quoted"}
            )

    @pytest.mark.asyncio
    async def test_notes_are_appended(self, service, repository, staff_context):
        order = make_order(notes="Rush please")
        repository.find_by_id.return_value = order
        repository.update_where.side_effect = echo_update_where(order)
        await service.transition_order_status(
            staff_context, "order-1",
            {"from_status": "requested", "to_status": "quoted", "notes": "Quoted at $1.20/unit"},
        )
        assert order.notes == "Rush please\nQuoted at $1.20/unit"


class TestCancelOrder:

    @pytest.mark.asyncio
    async def test_cancel_with_reason(self, service, repository, staff_context, history):
        order = make_order(quoted_at=T0, confirmed_at=at(1))
        repository.find_by_id.return_value = order
        repository.update_where.side_effect = echo_update_where(order)

        updated = await service.cancel_order(staff_context, "order-1", reason="Customer changed mind")

        assert calculate_status(updated) == OrderStatus.CANCELED
        assert updated.notes == "Canceled: Customer changed mind"
        assert history.get_last_change("order", "order-1").from_status == "confirmed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["completed_at", "shipped_at", "delivered_at", "canceled_at"])
    async def test_cannot_cancel_late_orders(self, service, repository, staff_context, field):
        repository.find_by_id.return_value = make_order(**{field: T0})
        with pytest.raises(BusinessRuleViolationError):
            await service.cancel_order(staff_context, "order-1")
        repository.update_where.assert_not_called()

    @pytest.mark.asyncio
    async def test_customer_cannot_cancel(self, service, customer_context):
        with pytest.raises(PermissionDeniedError):
            await service.cancel_order(customer_context, "order-1")


class TestUpdateAndDelete:

    @pytest.mark.asyncio
    async def test_staff_updates_amount(self, service, repository, staff_context):
        repository.find_by_id.return_value = make_order()
        await service.update_order(staff_context, "order-1", {"amount": "600.00"})
        entity_id, data = repository.update.await_args.args
        assert str(data["amount"]) == "600.00"

    @pytest.mark.asyncio
    async def test_lifecycle_fields_rejected(self, service, repository, staff_context):
        repository.find_by_id.return_value = make_order()
        with pytest.raises(ValidationError):
            await service.update_order(staff_context, "order-1", {"confirmed_at": T0.isoformat()})
        repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_generic_update_cannot_stamp_timestamps(self, service, repository, staff_context):
        repository.find_by_id.return_value = make_order()
        with pytest.raises(ValidationError):
            await service.update(staff_context, "order-1", {"shipped_at": T0})
        repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_customer_cannot_update(self, service, customer_context):
        with pytest.raises(PermissionDeniedError):
            await service.update_order(customer_context, "order-1", {"notes": "hi"})

    @pytest.mark.asyncio
    async def test_orders_are_never_deleted(self, service, repository, superadmin_context):
        repository.find_by_id.return_value = make_order()
        with pytest.raises(BusinessRuleViolationError) as exc_info:
            await service.delete(superadmin_context, "order-1")
        assert exc_info.value.message == "Orders cannot be deleted, only canceled"
        repository.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_skip_validation_cannot_delete(self, service, repository, superadmin_context):
        repository.find_by_id.return_value = make_order()
        with pytest.raises(BusinessRuleViolationError):
            await service.delete(superadmin_context, "order-1", ServiceOptions(skip_validation=True))
        repository.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_skip_validation_cannot_stamp_timestamps(self, service, repository, admin_context):
        repository.find_by_id.return_value = make_order()
        with pytest.raises(ValidationError):
            await service.update(admin_context, "order-1", {"delivered_at": T0}, ServiceOptions(skip_validation=True))
        with pytest.raises(ValidationError):
            await service.update(admin_context, "order-1", {"customer_id": "cust-2"}, ServiceOptions(skip_validation=True))
        repository.update.assert_not_called()


class TestReads:

    @pytest.mark.asyncio
    async def test_customer_reads_own_order(self, service, repository, customer_context):
        repository.find_with_items.return_value = make_order()
        assert (await service.get_order_with_items(customer_context, "order-1")).id == "order-1"

    @pytest.mark.asyncio
    async def test_customer_cannot_read_others(self, service, repository, other_customer_context):
        repository.find_with_items.return_value = make_order()
        with pytest.raises(OwnershipViolationError):
            await service.get_order_with_items(other_customer_context, "order-1")

    @pytest.mark.asyncio
    async def test_missing_order_with_items(self, service, repository, staff_context):
        repository.find_with_items.return_value = None
        assert await service.get_order_with_items(staff_context, "nope") is None

    @pytest.mark.asyncio
    async def test_orders_by_customer(self, service, repository, staff_context):
        await service.get_orders_by_customer(staff_context, "cust-3")
        assert repository.find_all.await_args.args[0].filters == {"customer_id": "cust-3"}

    @pytest.mark.asyncio
    async def test_customer_cannot_list_other_customer(self, service, repository, customer_context):
        with pytest.raises(OwnershipViolationError):
            await service.get_orders_by_customer(customer_context, "cust-2")
        repository.find_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_my_orders(self, service, repository, customer_context, staff_context):
        await service.get_my_orders(customer_context)
        assert repository.find_all.await_args.args[0].filters == {"customer_id": "cust-1"}
        with pytest.raises(PermissionDeniedError):
            await service.get_my_orders(staff_context)

    @pytest.mark.asyncio
    async def test_order_status(self, service, repository, customer_context):
        repository.find_by_id.return_value = make_order(quoted_at=T0)
        status = await service.get_order_status(customer_context, "order-1")
        assert status.status == OrderStatus.QUOTED
        assert OrderStatus.CANCELED in status.can_transition_to
        assert status.order_id == "order-1"

    @pytest.mark.asyncio
    async def test_orders_by_status(self, service, repository, staff_context):
        page = PaginatedResult(items=[make_order(id="b", quoted_at=T0)], total=41, page=2, limit=20)
        repository.find_by_status.return_value = page

        result = await service.get_orders_by_status(staff_context, "quoted")

        assert result is page
        status, now, options = repository.find_by_status.await_args.args
        assert status is OrderStatus.QUOTED
        assert now.tzinfo is not None
        repository.find_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_orders_by_unknown_status(self, service, repository, staff_context):
        with pytest.raises(ValidationError):
            await service.get_orders_by_status(staff_context, "lost")
        repository.find_by_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_customers_cannot_filter_by_status(self, service, repository, customer_context):
        with pytest.raises(PermissionDeniedError):
            await service.get_orders_by_status(customer_context, "quoted")
