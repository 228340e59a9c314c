"""
Product rules
"""
import re
from typing import Any, Dict, Optional

from hbm_service.rules.order_types import validate_product_for_order_type
from hbm_service.rules.result import RuleCheck

SKU_PATTERN = re.compile(r"^[A-Z0-9_-]+$")
SKU_MIN_LENGTH = 3
SKU_MAX_LENGTH = 100


def validate_sku(sku: Optional[str]) -> RuleCheck:
    check = RuleCheck()
    if sku is None:
        return check
    if not SKU_PATTERN.match(sku):
        check.errors.append("SKU must contain only uppercase letters, numbers, hyphens, and underscores")
    if len(sku) < SKU_MIN_LENGTH:
        check.errors.append(f"SKU must be at least {SKU_MIN_LENGTH} characters long")
    if len(sku) > SKU_MAX_LENGTH:
        check.errors.append(f"SKU cannot exceed {SKU_MAX_LENGTH} characters")
    return check


def validate_product(product, order_type) -> RuleCheck:
    """Rules for a new product (dict or object with is_variable, sku)."""
    sku = product.get("sku") if isinstance(product, dict) else getattr(product, "sku", None)
    return validate_product_for_order_type(product, order_type).merge(validate_sku(sku))


def validate_product_update(product, changes: Dict[str, Any], order_type, has_variants: bool) -> RuleCheck:
    """
    Rules for changing an existing product.

    order_type is the type the product will belong to after the change.
    """
    check = RuleCheck()
    is_variable = changes.get("is_variable")

    if is_variable is False and product.is_variable and has_variants:
        check.errors.append(
            "Cannot change product from variable to non-variable while it has variants. Remove all variants first"
        )
    if is_variable and not order_type.supports_variable_products:
        check.errors.append(
            f"Cannot make product variable for order type '{order_type.name}' as it does not support variable products"
        )

    new_type = changes.get("order_type_id")
    if new_type and str(new_type) != str(product.order_type_id):
        check.merge(validate_product_for_order_type(
            {"is_variable": product.is_variable if is_variable is None else is_variable},
            order_type,
        ))
        check.warnings.append(
            "Changing order type may affect existing business rules and relationships. Verify compatibility"
        )

    if changes.get("sku") and changes["sku"] != product.sku:
        check.merge(validate_sku(changes["sku"]))
    return check


def validate_variant(product, order_type) -> RuleCheck:
    check = RuleCheck()
    if not product.is_variable:
        check.errors.append("Product variants can only be created for variable products")
    if not order_type.supports_variable_products:
        check.errors.append(
            f"Product variants cannot be created for order type '{order_type.name}' "
            "as it does not support variable products"
        )
    return check


def validate_product_deletion(has_variants: bool) -> RuleCheck:
    check = RuleCheck()
    if has_variants:
        check.errors.append("Cannot delete product with existing variants. Remove all variants first")
    return check
