from hbm_service.models.customer import Customer
from hbm_service.models.role import Role, BUILT_IN_ROLES
from hbm_service.models.user import User
from hbm_service.models.inquiry import Inquiry
from hbm_service.models.product import OrderType, Product, ProductVariant
from hbm_service.models.order import Order, OrderItem
from hbm_service.models.media import Media

__all__ = [
    "Customer",
    "Role",
    "BUILT_IN_ROLES",
    "User",
    "Inquiry",
    "OrderType",
    "Product",
    "ProductVariant",
    "Order",
    "OrderItem",
    "Media",
]
