"""
Tests for AuthorizedService: permission, ownership and query scoping.
"""
import logging
import pytest
from types import SimpleNamespace

from pydantic import BaseModel, Field

from hbm_service.core.exceptions import (
    AuthenticationError,
    BusinessRuleViolationError,
    ConcurrentModificationError,
    NotFoundError,
    OwnershipViolationError,
    PermissionDeniedError,
    ValidationError,
)
from hbm_service.core.permissions import Action, Resource
from hbm_service.schemas.common import QueryOptions
from hbm_service.services.base_service import (
    AuthorizedService,
    PermissionResult,
    ServiceOptions,
    validate_payload,
)


class WidgetService(AuthorizedService):
    """Customers may read widgets they own (owner_id)."""
    resource = Resource.PRODUCTS

    def __init__(self, repository):
        super().__init__(repository)
        self.validate_update_calls = 0

    def check_customer_permission(self, context, action):
        if action == Action.READ:
            return PermissionResult(allowed=True)
        return PermissionResult(allowed=False, reason="read only")

    def check_customer_access(self, context, entity):
        if context.is_customer:
            return context.user_id == entity.owner_id
        return True

    def apply_customer_filters(self, context, options):
        return options.with_filters(owner_id=context.user_id)

    async def check_update_rules(self, context, entity, data):
        if "owner_id" in data:
            raise ValidationError("Owner cannot change")

    async def check_delete_rules(self, context, entity):
        if entity.locked:
            raise BusinessRuleViolationError("Widget is locked")

    async def validate_update(self, context, entity, data):
        self.validate_update_calls += 1
        if data.get("price", 0) < 0:
            raise ValidationError("Price must be positive")


class NoCustomerService(WidgetService):
    check_customer_permission = AuthorizedService.check_customer_permission


def widget(**kwargs):
    data = {"id": "p1", "owner_id": "cust-1", "price": 10, "locked": False}
    data.update(kwargs)
    return SimpleNamespace(**data)


@pytest.fixture
def service(repository):
    return WidgetService(repository)


class TestRequirePermission:

    def test_staff_with_permission(self, service, admin_context):
        service.require_permission(admin_context, Action.UPDATE)

    def test_staff_without_permission_lists_satisfying(self, service, staff_context):
        with pytest.raises(PermissionDeniedError) as exc_info:
            service.require_permission(staff_context, Action.DELETE)
        error = exc_info.value
        assert error.required_permissions == ["products:delete", "*", "superadmin"]
        assert error.resource == "products"
        assert error.action == "delete"
        assert error.code == "PERMISSION_DENIED"

    def test_superadmin_passes_everything(self, service, superadmin_context):
        for action in Action:
            service.require_permission(superadmin_context, action)

    def test_customer_uses_allow_list(self, service, customer_context):
        service.require_permission(customer_context, Action.READ)
        with pytest.raises(PermissionDeniedError) as exc_info:
            service.require_permission(customer_context, Action.UPDATE)
        assert exc_info.value.message == "read only"
        assert exc_info.value.required_permissions == []

    def test_customer_permissions_are_ignored(self, service):
        from hbm_service.core.auth_context import create_auth_context
        context = create_auth_context("cust-1", "customer", "customer", ["*"])
        with pytest.raises(PermissionDeniedError):
            service.require_permission(context, Action.DELETE)

    def test_customers_denied_by_default(self, repository, customer_context):
        with pytest.raises(PermissionDeniedError) as exc_info:
            NoCustomerService(repository).require_permission(customer_context, Action.READ)
        assert "Customers do not have access" in exc_info.value.message

    def test_missing_context(self, service):
        with pytest.raises(AuthenticationError):
            service.require_permission(None, Action.READ)

    def test_denial_is_audited(self, service, staff_context, caplog):
        with caplog.at_level(logging.WARNING, logger="audit"):
            with pytest.raises(PermissionDeniedError):
                service.require_permission(staff_context, Action.DELETE)
        record = next(r for r in caplog.records if r.name == "audit")
        assert record.audit["operation"] == "products.delete.denied"
        assert record.audit["success"] is False
        assert record.audit["actor_id"] == "staff-1"


class TestOwnership:

    @pytest.mark.asyncio
    async def test_customer_reads_own(self, service, repository, customer_context):
        repository.find_by_id.return_value = widget()
        assert (await service.get_by_id(customer_context, "p1")).id == "p1"

    @pytest.mark.asyncio
    async def test_customer_reading_other_is_ownership_violation(self, service, repository, other_customer_context):
        repository.find_by_id.return_value = widget()
        with pytest.raises(OwnershipViolationError) as exc_info:
            await service.find_by_id(other_customer_context, "p1")
        assert exc_info.value.code == "CUSTOMER_ACCESS_VIOLATION"
        assert exc_info.value.details["entity_id"] == "p1"

    @pytest.mark.asyncio
    async def test_ownership_violation_is_distinguishable(self, service, repository, other_customer_context):
        repository.find_by_id.return_value = widget()
        with pytest.raises(PermissionDeniedError) as exc_info:
            await service.get_by_id(other_customer_context, "p1")
        assert isinstance(exc_info.value, OwnershipViolationError)

    @pytest.mark.asyncio
    async def test_staff_skip_ownership(self, service, repository, admin_context):
        repository.find_by_id.return_value = widget(owner_id="someone-else")
        assert await service.get_by_id(admin_context, "p1") is not None


class TestOrdering:
    """Nothing is loaded or written once a check fails."""

    @pytest.mark.asyncio
    async def test_permission_failure_before_load(self, service, repository, staff_context):
        with pytest.raises(PermissionDeniedError):
            await service.delete(staff_context, "p1")
        repository.find_by_id.assert_not_called()
        repository.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_validation_failure_before_write(self, service, repository, admin_context):
        repository.find_by_id.return_value = widget()
        with pytest.raises(ValidationError):
            await service.update(admin_context, "p1", {"price": -1})
        repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_entity(self, service, repository, admin_context):
        repository.find_by_id.return_value = None
        with pytest.raises(NotFoundError) as exc_info:
            await service.update(admin_context, "p404", {"price": 3})
        assert exc_info.value.status_code == 404
        repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_repository_errors_propagate(self, service, repository, admin_context):
        repository.find_by_id.side_effect = ConnectionError("db down")
        with pytest.raises(ConnectionError):
            await service.get_by_id(admin_context, "p1")


class TestCrud:

    @pytest.mark.asyncio
    async def test_create(self, service, repository, admin_context):
        repository.create.return_value = widget(id="p2")
        created = await service.create(admin_context, {"owner_id": "cust-1", "price": 5})
        assert created.id == "p2"
        repository.create.assert_awaited_once_with({"owner_id": "cust-1", "price": 5})

    @pytest.mark.asyncio
    async def test_find_by_id_absent(self, service, repository, admin_context):
        repository.find_by_id.return_value = None
        assert await service.find_by_id(admin_context, "nope") is None

    @pytest.mark.asyncio
    async def test_update_runs_validation(self, service, repository, admin_context):
        repository.find_by_id.return_value = widget()
        repository.update.return_value = widget(price=12)
        await service.update(admin_context, "p1", {"price": 12})
        assert service.validate_update_calls == 1
        repository.update.assert_awaited_once_with("p1", {"price": 12})

    @pytest.mark.asyncio
    async def test_skip_validation_skips_input_checks_only(self, service, repository, admin_context):
        repository.find_by_id.return_value = widget()
        await service.update(admin_context, "p1", {"price": -1}, ServiceOptions(skip_validation=True))
        assert service.validate_update_calls == 0
        repository.update.assert_awaited_once_with("p1", {"price": -1})

    @pytest.mark.asyncio
    async def test_skip_validation_never_skips_authorization(self, service, repository, staff_context):
        repository.find_by_id.return_value = widget()
        with pytest.raises(PermissionDeniedError):
            await service.update(staff_context, "p1", {"price": 1}, ServiceOptions(skip_validation=True))
        repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_skip_validation_never_skips_update_rules(self, service, repository, admin_context):
        repository.find_by_id.return_value = widget()
        with pytest.raises(ValidationError, match="Owner cannot change"):
            await service.update(admin_context, "p1", {"owner_id": "cust-2"}, ServiceOptions(skip_validation=True))
        repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_skip_validation_never_skips_delete_rules(self, service, repository, admin_context):
        repository.find_by_id.return_value = widget(locked=True)
        with pytest.raises(BusinessRuleViolationError):
            await service.delete(admin_context, "p1", ServiceOptions(skip_validation=True))
        repository.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete(self, service, repository, admin_context):
        repository.find_by_id.return_value = widget()
        repository.delete.return_value = True
        assert await service.delete(admin_context, "p1") is True


class TestQueryScoping:

    @pytest.mark.asyncio
    async def test_customer_lists_are_filtered(self, service, repository, customer_context):
        await service.find_all(customer_context, QueryOptions(filters={"owner_id": "cust-2", "color": "red"}))
        options = repository.find_all.await_args.args[0]
        assert options.filters == {"owner_id": "cust-1", "color": "red"}

    @pytest.mark.asyncio
    async def test_staff_lists_unfiltered(self, service, repository, admin_context):
        await service.find_all(admin_context)
        assert repository.find_all.await_args.args[0].filters == {}

    def test_page_size_clamped(self, service, admin_context):
        options = service.scope_query(admin_context, QueryOptions(limit=5000))
        assert options.limit == 100


class TestConditionalUpdate:

    @pytest.mark.asyncio
    async def test_lost_race(self, service, repository):
        repository.update_where.return_value = None
        with pytest.raises(ConcurrentModificationError) as exc_info:
            await service.conditional_update("p1", {"version": 3}, {"price": 1})
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_won_race(self, service, repository):
        repository.update_where.return_value = widget(price=1)
        updated = await service.conditional_update("p1", {"version": 3}, {"price": 1})
        assert updated.price == 1
        repository.update_where.assert_awaited_once_with("p1", {"version": 3}, {"price": 1})


class Payload(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class TestValidatePayload:

    def test_dict_is_validated(self):
        assert validate_payload(Payload, {"name": "a", "quantity": 2}).quantity == 2

    def test_instance_passes_through(self):
        payload = Payload(name="a", quantity=1)
        assert validate_payload(Payload, payload) is payload

    def test_errors_become_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(Payload, {"name": "", "quantity": 0})
        fields = {e["field"] for e in exc_info.value.details["errors"]}
        assert fields == {"name", "quantity"}
        assert exc_info.value.message.startswith("Invalid Payload:")
