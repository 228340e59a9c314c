"""
Product Service

Staff manage the catalog: products, their variants and which order type
they belong to. Customers browse it read-only and only ever see active
products and variants.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from hbm_service.core.auth_context import AuthContext
from hbm_service.core.exceptions import NotFoundError, ValidationError
from hbm_service.core.permissions import Action, Resource
from hbm_service.models import OrderType, Product, ProductVariant
from hbm_service.rules import (
    OrderTypeRules,
    describe_order_type_rules,
    get_order_type_rules,
    validate_product,
    validate_product_deletion,
    validate_product_update,
    validate_variant,
)
from hbm_service.schemas.common import PaginatedResult, QueryOptions
from hbm_service.schemas.product import ProductCreate, ProductUpdate, ProductVariantCreate, ProductVariantUpdate
from hbm_service.services.base_service import AuthorizedService, PermissionResult, validate_payload

logger = logging.getLogger(__name__)


class ProductService(AuthorizedService[Product]):
    resource = Resource.PRODUCTS

    def __init__(self, repository, order_type_repository, variant_repository):
        super().__init__(repository)
        self.order_type_repository = order_type_repository
        self.variant_repository = variant_repository

    def check_customer_permission(self, context: AuthContext, action: Action) -> PermissionResult:
        if action == Action.READ:
            return PermissionResult(allowed=True)
        return PermissionResult(
            allowed=False,
            reason=f"Customers cannot perform {action.value} operations on products",
        )

    def check_customer_access(self, context: AuthContext, entity: Product) -> bool:
        if context.is_customer:
            return bool(entity.is_active)
        return True

    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        return options.with_filters(is_active=True)

    async def check_create_rules(self, context: AuthContext, data: Dict[str, Any]) -> None:
        order_type = await self._order_type(data.get("order_type_id"))
        validate_product(data, order_type).raise_for_errors(
            "Product violates business rules",
            product_name=data.get("name"),
            order_type=order_type.name,
        )
        await self._require_unique_sku(data.get("sku"))

    async def check_update_rules(self, context: AuthContext, entity: Product, data: Dict[str, Any]) -> None:
        if data.get("sku"):
            await self._require_unique_sku(data["sku"], entity.id)
        order_type = await self._order_type(data.get("order_type_id") or entity.order_type_id)
        has_variants = bool(await self.variant_repository.find_by_product(entity.id))
        validate_product_update(entity, data, order_type, has_variants).raise_for_errors(
            "Product update violates business rules",
            product_id=str(entity.id),
            order_type=order_type.name,
        )

    async def check_delete_rules(self, context: AuthContext, entity: Product) -> None:
        has_variants = bool(await self.variant_repository.find_by_product(entity.id))
        validate_product_deletion(has_variants).raise_for_errors(
            "Product cannot be deleted",
            product_id=str(entity.id),
        )

    async def _order_type(self, order_type_id) -> OrderType:
        order_type = await self.order_type_repository.find_by_id(order_type_id)
        if order_type is None:
            raise ValidationError("Order type not found", details={"order_type_id": order_type_id})
        return order_type

    async def _require_unique_sku(self, sku: Optional[str], product_id=None) -> None:
        if not sku:
            return
        existing = await self.repository.find_by_sku(sku)
        if existing is not None and str(existing.id) != str(product_id):
            raise ValidationError("SKU already exists", details={"sku": sku})

    async def create_product(self, context: AuthContext, data: Union[ProductCreate, Dict[str, Any]]) -> Product:
        """
        Create a product under an order type (staff only).

        Raises:
            PermissionDeniedError: If the caller lacks products:create
            ValidationError: If the payload is invalid, the SKU is taken or the order type is unknown
            BusinessRuleViolationError: If the order type does not accept this product
        """
        self.require_permission(context, Action.CREATE)
        record = validate_payload(ProductCreate, data).model_dump()
        record["created_by"] = context.user_id
        product = await self.create(context, record)
        self.log_operation("create_product", context, {"entity_id": str(product.id), "name": product.name})
        return product

    async def update_product(self, context: AuthContext, product_id, data: Union[ProductUpdate, Dict[str, Any]]) -> Product:
        changes = validate_payload(ProductUpdate, data).model_dump(exclude_unset=True)
        return await self.update(context, product_id, changes)

    async def toggle_product_status(self, context: AuthContext, product_id, is_active: bool) -> Product:
        await self.load_authorized(context, product_id, Action.UPDATE)
        updated = await self.repository.update(product_id, {"is_active": is_active})
        self.log_operation("toggle_product_status", context, {"entity_id": str(product_id), "is_active": is_active})
        return updated

    async def find_by_sku(self, context: AuthContext, sku: str) -> Optional[Product]:
        """Look up a product by SKU. Inactive products are invisible to customers."""
        self.require_permission(context, Action.READ)
        product = await self.repository.find_by_sku(sku)
        if product is None or not self.check_customer_access(context, product):
            return None
        return product

    async def get_products_by_order_type(
        self,
        context: AuthContext,
        order_type_id,
        options: Optional[QueryOptions] = None,
    ) -> PaginatedResult:
        self.require_permission(context, Action.READ)
        options = self.scope_query(context, options).with_filters(order_type_id=order_type_id, is_active=True)
        return await self.repository.find_all(options)

    async def get_variable_products(self, context: AuthContext, options: Optional[QueryOptions] = None) -> PaginatedResult:
        self.require_permission(context, Action.READ)
        options = self.scope_query(context, options).with_filters(is_variable=True, is_active=True)
        return await self.repository.find_all(options)

    async def get_order_type_rules(self, context: AuthContext, order_type_id) -> Dict[str, Any]:
        """What an order type allows, for catalog screens and order forms."""
        self.require_permission(context, Action.READ)
        order_type = await self._order_type(order_type_id)
        rules: OrderTypeRules = get_order_type_rules(order_type)
        return {"rules": rules, "description": describe_order_type_rules(order_type)}

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    async def create_product_variant(
        self,
        context: AuthContext,
        data: Union[ProductVariantCreate, Dict[str, Any]],
    ) -> ProductVariant:
        """
        Add a variant to a variable product (staff only).

        Raises:
            PermissionDeniedError: If the caller lacks products:create
            NotFoundError: If the product does not exist
            BusinessRuleViolationError: If the product is not variable or its order type has no variants
            ValidationError: If the variant identifier or name is taken
        """
        self.require_permission(context, Action.CREATE)
        payload = validate_payload(ProductVariantCreate, data)

        product = await self.load(payload.product_id)
        order_type = await self._order_type(product.order_type_id)
        validate_variant(product, order_type).raise_for_errors(
            "Variant violates business rules",
            product_id=str(product.id),
            order_type=order_type.name,
        )
        await self._require_unique_variant(product.id, payload.name, payload.variant_identifier)

        variant = await self.variant_repository.create(payload.model_dump())
        self.log_operation(
            "create_product_variant",
            context,
            {"entity_id": str(variant.id), "product_id": str(product.id)},
        )
        return variant

    async def update_product_variant(
        self,
        context: AuthContext,
        variant_id,
        data: Union[ProductVariantUpdate, Dict[str, Any]],
    ) -> ProductVariant:
        self.require_permission(context, Action.UPDATE)
        changes = validate_payload(ProductVariantUpdate, data).model_dump(exclude_unset=True)

        variant = await self.variant_repository.find_by_id(variant_id)
        if variant is None:
            raise NotFoundError("product_variants", variant_id)
        await self._require_unique_variant(
            variant.product_id,
            changes.get("name"),
            changes.get("variant_identifier"),
            variant_id=variant.id,
        )

        updated = await self.variant_repository.update(variant_id, changes)
        self.log_operation("update_product_variant", context, {"entity_id": str(variant_id), "fields": sorted(changes)})
        return updated

    async def get_product_variants(self, context: AuthContext, product_id) -> List[ProductVariant]:
        product = await self.load_authorized(context, product_id, Action.READ)
        variants = await self.variant_repository.find_by_product(product.id)
        if context.is_customer:
            variants = [v for v in variants if v.is_active]
        return variants

    async def _require_unique_variant(self, product_id, name: Optional[str], identifier: Optional[str], variant_id=None) -> None:
        if identifier:
            existing = await self.variant_repository.find_by_identifier(identifier)
            if existing is not None and str(existing.id) != str(variant_id):
                raise ValidationError("Variant identifier already exists", details={"variant_identifier": identifier})
        if name:
            siblings = await self.variant_repository.find_by_product(product_id)
            if any(v.name == name and str(v.id) != str(variant_id) for v in siblings):
                raise ValidationError("Variant name already used for this product", details={"name": name})
