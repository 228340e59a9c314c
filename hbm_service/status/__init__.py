from hbm_service.status.order_status import (
    OrderStatus,
    ORDER_STATUS_TRANSITIONS,
    StatusComputationResult,
    calculate_status,
    compute_order_status,
)
from hbm_service.status.inquiry_status import (
    InquiryStatus,
    INQUIRY_STATUS_TRANSITIONS,
    compute_inquiry_status,
)
from hbm_service.status.history import StatusChange, StatusHistoryRecorder

__all__ = [
    "OrderStatus",
    "ORDER_STATUS_TRANSITIONS",
    "StatusComputationResult",
    "calculate_status",
    "compute_order_status",
    "InquiryStatus",
    "INQUIRY_STATUS_TRANSITIONS",
    "compute_inquiry_status",
    "StatusChange",
    "StatusHistoryRecorder",
]
