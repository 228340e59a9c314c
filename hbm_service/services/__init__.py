from hbm_service.services.base_service import (
    AuthorizedService,
    PermissionResult,
    ServiceOptions,
    validate_payload,
)
from hbm_service.services.customer_service import CustomerService
from hbm_service.services.order_service import OrderService
from hbm_service.services.inquiry_service import InquiryService
from hbm_service.services.product_service import ProductService
from hbm_service.services.user_service import UserService
from hbm_service.services.role_service import RoleService
from hbm_service.services.media_service import MediaService, MediaStorage, StorageHealth

__all__ = [
    "AuthorizedService",
    "PermissionResult",
    "ServiceOptions",
    "validate_payload",
    "CustomerService",
    "OrderService",
    "InquiryService",
    "ProductService",
    "UserService",
    "RoleService",
    "MediaService",
    "MediaStorage",
    "StorageHealth",
]
