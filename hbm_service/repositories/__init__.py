from hbm_service.repositories.base import SQLAlchemyRepository
from hbm_service.repositories.entities import (
    CustomerRepository,
    UserRepository,
    RoleRepository,
    OrderRepository,
    OrderTypeRepository,
    ProductRepository,
    ProductVariantRepository,
    InquiryRepository,
    MediaRepository,
    order_status_condition,
)

__all__ = [
    "SQLAlchemyRepository",
    "CustomerRepository",
    "UserRepository",
    "RoleRepository",
    "OrderRepository",
    "OrderTypeRepository",
    "ProductRepository",
    "ProductVariantRepository",
    "InquiryRepository",
    "MediaRepository",
    "order_status_condition",
]
