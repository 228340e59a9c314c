"""
Order type rules

- Private Label: custom manufacturing, no product or variant associations
- White Label: every item must reference an existing product variant
- Fabric: products allowed, variants never
- Anything else follows the order type's supports_products and
  supports_variable_products flags

Items may be dicts or objects with item_name, quantity and
product_variant_id.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from hbm_service.rules.result import RuleCheck

PRIVATE_LABEL = "Private Label"
WHITE_LABEL = "White Label"
FABRIC = "Fabric"


@dataclass(frozen=True)
class OrderTypeRules:
    name: str
    supports_products: bool
    supports_variable_products: bool
    allows_product_association: bool
    allows_variant_association: bool
    requires_product_association: bool = False
    requires_variant_association: bool = False


def get_order_type_rules(order_type) -> OrderTypeRules:
    supports_products = bool(order_type.supports_products)
    supports_variable = bool(order_type.supports_variable_products)

    if order_type.name == PRIVATE_LABEL:
        return OrderTypeRules(order_type.name, supports_products, supports_variable, False, False)
    if order_type.name == WHITE_LABEL:
        return OrderTypeRules(order_type.name, supports_products, supports_variable, True, True, True, True)
    if order_type.name == FABRIC:
        return OrderTypeRules(order_type.name, supports_products, supports_variable, True, False)
    return OrderTypeRules(order_type.name, supports_products, supports_variable, supports_products, supports_variable)


def describe_order_type_rules(order_type) -> str:
    if order_type.name == PRIVATE_LABEL:
        return "Custom manufacturing without pre-defined products. Cannot have product or variant associations"
    if order_type.name == WHITE_LABEL:
        return "Must use existing product variants. Requires both product and variant associations"
    if order_type.name == FABRIC:
        return "Raw materials and simple products. Can have products but not variants"

    rules = get_order_type_rules(order_type)
    parts = []
    if rules.supports_products:
        parts.append("Supports product associations")
    if rules.supports_variable_products:
        parts.append("Supports variable products with variants")
    return ". ".join(parts)


def validate_variable_product_support(order_type, is_variable: bool) -> RuleCheck:
    check = RuleCheck()
    if is_variable and not order_type.supports_variable_products:
        check.errors.append(f"Order type '{order_type.name}' does not support variable products")
    return check


def validate_product_for_order_type(product, order_type) -> RuleCheck:
    """Can product live under order_type at all."""
    check = RuleCheck()
    rules = get_order_type_rules(order_type)
    if not rules.allows_product_association:
        check.errors.append(f"Order type '{order_type.name}' does not support product associations")
    return check.merge(validate_variable_product_support(order_type, bool(_get(product, "is_variable"))))


def validate_order_items(items: Iterable, order_type) -> RuleCheck:
    """Per-item checks: quantity, name, and the order type's variant policy."""
    check = RuleCheck()
    items = list(items)
    if not items:
        check.errors.append("Orders must have at least one item")
        return check

    rules = get_order_type_rules(order_type)
    for index, item in enumerate(items, start=1):
        if (_get(item, "quantity") or 0) <= 0:
            check.errors.append(f"Order item {index}: Quantity must be positive")
        if not (_get(item, "item_name") or "").strip():
            check.errors.append(f"Order item {index}: Item name is required")

        has_variant = _get(item, "product_variant_id") is not None
        if has_variant and not rules.allows_variant_association:
            check.errors.append(
                f"Order item {index}: {order_type.name} orders cannot have product variant associations"
            )
        if not has_variant and rules.requires_variant_association:
            check.errors.append(
                f"Order item {index}: {order_type.name} orders must have product variant associations"
            )
    return check


def validate_single_product(items: Iterable, product_by_variant: Optional[Dict[str, Any]] = None) -> RuleCheck:
    """
    Warn when the items span more than one product.

    product_by_variant maps variant id to product id; without it distinct
    variants are compared.
    """
    check = RuleCheck()
    product_by_variant = product_by_variant or {}
    products = {
        product_by_variant.get(variant_id, variant_id)
        for variant_id in (_get(item, "product_variant_id") for item in items)
        if variant_id is not None
    }
    if len(products) > 1:
        check.warnings.append(
            "Order contains items from multiple different products. "
            "Consider splitting into separate orders for better tracking and fulfillment"
        )
    return check


def validate_order_for_order_type(items: Iterable, order_type, product_by_variant: Optional[Dict[str, Any]] = None) -> RuleCheck:
    """Every order-type rule for a new order's items."""
    items = list(items)
    return validate_order_items(items, order_type).merge(validate_single_product(items, product_by_variant))


def _get(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
