from hbm_service.rules.result import RuleCheck
from hbm_service.rules.order_types import (
    FABRIC,
    PRIVATE_LABEL,
    WHITE_LABEL,
    OrderTypeRules,
    describe_order_type_rules,
    get_order_type_rules,
    validate_order_for_order_type,
    validate_order_items,
    validate_product_for_order_type,
    validate_single_product,
    validate_variable_product_support,
)
from hbm_service.rules.products import (
    validate_product,
    validate_product_deletion,
    validate_product_update,
    validate_sku,
    validate_variant,
)

__all__ = [
    "RuleCheck",
    "FABRIC",
    "PRIVATE_LABEL",
    "WHITE_LABEL",
    "OrderTypeRules",
    "describe_order_type_rules",
    "get_order_type_rules",
    "validate_order_for_order_type",
    "validate_order_items",
    "validate_product_for_order_type",
    "validate_single_product",
    "validate_variable_product_support",
    "validate_product",
    "validate_product_deletion",
    "validate_product_update",
    "validate_sku",
    "validate_variant",
]
