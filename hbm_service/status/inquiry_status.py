"""
Inquiry lifecycle state machine

Inquiries store their status as an integer. Every write that changes the
status must also stamp the matching timestamp in the same UPDATE:

    accepted -> accepted_at, rejected -> rejected_at, closed -> closed_at

Transitions:
    new -> accepted | rejected
    accepted -> in_progress
    in_progress -> closed
rejected and closed are terminal.
"""
import logging
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional

from hbm_service.core.exceptions import InvalidStateTransitionError, ValidationError
from hbm_service.core.utils import ensure_aware, utcnow
from hbm_service.status.order_status import StatusComputationResult

logger = logging.getLogger(__name__)


class InquiryStatus(IntEnum):
    REJECTED = 0
    NEW = 1
    ACCEPTED = 2
    IN_PROGRESS = 3
    CLOSED = 4

    @property
    def label(self) -> str:
        return INQUIRY_STATUS_LABELS[self]


INQUIRY_STATUS_LABELS: Dict[InquiryStatus, str] = {
    InquiryStatus.REJECTED: "Rejected",
    InquiryStatus.NEW: "New",
    InquiryStatus.ACCEPTED: "Accepted",
    InquiryStatus.IN_PROGRESS: "In Progress",
    InquiryStatus.CLOSED: "Closed",
}

INQUIRY_STATUS_TRANSITIONS: Dict[InquiryStatus, List[InquiryStatus]] = {
    InquiryStatus.NEW: [InquiryStatus.ACCEPTED, InquiryStatus.REJECTED],
    InquiryStatus.ACCEPTED: [InquiryStatus.IN_PROGRESS],
    InquiryStatus.IN_PROGRESS: [InquiryStatus.CLOSED],
    InquiryStatus.REJECTED: [],
    InquiryStatus.CLOSED: [],
}

INQUIRY_STATUS_TIMESTAMP_FIELDS: Dict[InquiryStatus, str] = {
    InquiryStatus.ACCEPTED: "accepted_at",
    InquiryStatus.REJECTED: "rejected_at",
    InquiryStatus.CLOSED: "closed_at",
}

INQUIRY_STATUS_DESCRIPTIONS: Dict[InquiryStatus, str] = {
    InquiryStatus.REJECTED: "Inquiry has been reviewed and rejected",
    InquiryStatus.NEW: "Inquiry has been submitted and is awaiting review",
    InquiryStatus.ACCEPTED: "Inquiry has been accepted and approved for processing",
    InquiryStatus.IN_PROGRESS: "Inquiry is currently being processed",
    InquiryStatus.CLOSED: "Inquiry has been completed and closed",
}


def to_inquiry_status(value: Any) -> InquiryStatus:
    """
    Coerce an int, InquiryStatus or label ("accepted", "In Progress") to a status.

    Raises:
        ValidationError: If the value is not an inquiry status
    """
    if isinstance(value, InquiryStatus):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Invalid inquiry status: {value!r}")
    if isinstance(value, int):
        try:
            return InquiryStatus(value)
        except ValueError:
            raise ValidationError(f"Inquiry status must be between 0 and 4, got {value}")
    if isinstance(value, str):
        key = value.strip().lower().replace(" ", "_")
        for status in InquiryStatus:
            if status.name.lower() == key:
                return status
    raise ValidationError(f"Invalid inquiry status: {value!r}")


def get_inquiry_status_label(value: int) -> str:
    try:
        return INQUIRY_STATUS_LABELS[InquiryStatus(value)]
    except ValueError:
        return "unknown"


def get_inquiry_status_value(label: str) -> int:
    for status, text in INQUIRY_STATUS_LABELS.items():
        if text == label:
            return int(status)
    return int(InquiryStatus.NEW)


def is_terminal_inquiry_status(status) -> bool:
    return not INQUIRY_STATUS_TRANSITIONS[to_inquiry_status(status)]


def get_next_inquiry_statuses(status) -> List[InquiryStatus]:
    return list(INQUIRY_STATUS_TRANSITIONS[to_inquiry_status(status)])


def is_valid_inquiry_status_transition(from_status, to_status) -> bool:
    return to_inquiry_status(to_status) in INQUIRY_STATUS_TRANSITIONS[to_inquiry_status(from_status)]


def compute_inquiry_status(inquiry, now: Optional[datetime] = None) -> StatusComputationResult:
    """Describe the stored status; out-of-range values are reported and treated as new."""
    computed_at = now or utcnow()
    raw = getattr(inquiry, "status", None)
    try:
        status = InquiryStatus(raw)
    except (ValueError, TypeError):
        return StatusComputationResult(
            status=InquiryStatus.NEW,
            computed_at=computed_at,
            factors=[f"Invalid status value: {raw}", "Defaulted to NEW status due to invalid value"],
            is_terminal=False,
            can_transition_to=get_next_inquiry_statuses(InquiryStatus.NEW),
        )

    factors = [INQUIRY_STATUS_DESCRIPTIONS[status]]
    field_name = INQUIRY_STATUS_TIMESTAMP_FIELDS.get(status)
    stamped = ensure_aware(getattr(inquiry, field_name, None)) if field_name else None
    if stamped is not None:
        factors.append(f"{status.label} on {stamped.isoformat()}")
    if status == InquiryStatus.IN_PROGRESS and getattr(inquiry, "accepted_at", None):
        factors.append("Previously accepted and now in progress")

    return StatusComputationResult(
        status=status,
        computed_at=computed_at,
        factors=factors,
        is_terminal=is_terminal_inquiry_status(status),
        can_transition_to=get_next_inquiry_statuses(status),
    )


def validate_transition(inquiry, from_status, to_status) -> InquiryStatus:
    """
    Validate a requested inquiry transition against the persisted status.

    Returns:
        The persisted current status

    Raises:
        ValidationError: If a status value is out of range
        InvalidStateTransitionError: If the caller is stale or the transition is not allowed
    """
    from_status = to_inquiry_status(from_status)
    to_status = to_inquiry_status(to_status)
    current = to_inquiry_status(getattr(inquiry, "status", None))

    if current != from_status:
        raise InvalidStateTransitionError(
            f"Inquiry status is {current.label}, not {from_status.label}",
            from_status=from_status.name.lower(),
            to_status=to_status.name.lower(),
            current_status=current.name.lower(),
        )

    valid_next = INQUIRY_STATUS_TRANSITIONS[current]
    if to_status not in valid_next:
        raise InvalidStateTransitionError(
            f"Cannot transition from {current.label} to {to_status.label}. "
            f"Valid transitions: {[s.label for s in valid_next]}",
            from_status=from_status.name.lower(),
            to_status=to_status.name.lower(),
            current_status=current.name.lower(),
        )
    return current


def transition_update(to_status, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Status plus its matching timestamp, written together."""
    to_status = to_inquiry_status(to_status)
    data: Dict[str, Any] = {"status": int(to_status)}
    field_name = INQUIRY_STATUS_TIMESTAMP_FIELDS.get(to_status)
    if field_name:
        data[field_name] = now or utcnow()
    return data


def validate_inquiry_data(inquiry) -> List[str]:
    """Status/timestamp consistency problems (empty if consistent)."""
    errors = []
    raw = getattr(inquiry, "status", None)
    if not isinstance(raw, int) or isinstance(raw, bool):
        return ["Inquiry status must be a number"]
    if raw < 0 or raw > 4:
        return ["Inquiry status must be between 0 and 4"]
    status = InquiryStatus(raw)

    created_at = ensure_aware(getattr(inquiry, "created_at", None))
    accepted_at = ensure_aware(getattr(inquiry, "accepted_at", None))
    rejected_at = ensure_aware(getattr(inquiry, "rejected_at", None))
    closed_at = ensure_aware(getattr(inquiry, "closed_at", None))

    if created_at is not None:
        for label, value in (("Accepted", accepted_at), ("Rejected", rejected_at), ("Closed", closed_at)):
            if value is not None and value < created_at:
                errors.append(f"{label} date cannot be before creation date")

    if status == InquiryStatus.ACCEPTED and accepted_at is None:
        errors.append("Accepted status requires accepted_at date")
    if status == InquiryStatus.IN_PROGRESS and accepted_at is None:
        errors.append("In Progress status requires accepted_at date")
    if status == InquiryStatus.REJECTED and rejected_at is None:
        errors.append("Rejected status requires rejected_at date")
    if status == InquiryStatus.CLOSED and closed_at is None:
        errors.append("Closed status requires closed_at date")

    if accepted_at is not None and rejected_at is not None:
        errors.append("Inquiry cannot be both accepted and rejected")
    return errors


def get_inquiry_status_description(status) -> str:
    try:
        return INQUIRY_STATUS_DESCRIPTIONS[InquiryStatus(status)]
    except ValueError:
        return "Unknown inquiry status"


def filter_inquiries_by_status(inquiries: Iterable, status) -> list:
    status = to_inquiry_status(status)
    return [inquiry for inquiry in inquiries if getattr(inquiry, "status", None) == int(status)]


def group_inquiries_by_status(inquiries: Iterable) -> Dict[str, list]:
    grouped: Dict[str, list] = {}
    for inquiry in inquiries:
        grouped.setdefault(get_inquiry_status_label(getattr(inquiry, "status", -1)), []).append(inquiry)
    return grouped


def get_inquiry_status_statistics(inquiries: Iterable) -> Dict[str, int]:
    stats = {label: 0 for label in INQUIRY_STATUS_LABELS.values()}
    for inquiry in inquiries:
        label = get_inquiry_status_label(getattr(inquiry, "status", -1))
        stats[label] = stats.get(label, 0) + 1
    return stats


def log_transition(inquiry_id, from_status, to_status, actor_id=None):
    logger.info(
        f"Inquiry {inquiry_id} transitioned {to_inquiry_status(from_status).label} -> "
        f"{to_inquiry_status(to_status).label} by {actor_id or 'system'}"
    )
