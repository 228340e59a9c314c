"""
Tests for the inquiry lifecycle state machine.
"""
import pytest

from hbm_service.core.exceptions import InvalidStateTransitionError, ValidationError
from hbm_service.status.inquiry_status import (
    InquiryStatus,
    compute_inquiry_status,
    filter_inquiries_by_status,
    get_inquiry_status_description,
    get_inquiry_status_label,
    get_inquiry_status_statistics,
    get_inquiry_status_value,
    get_next_inquiry_statuses,
    group_inquiries_by_status,
    is_terminal_inquiry_status,
    is_valid_inquiry_status_transition,
    to_inquiry_status,
    transition_update,
    validate_inquiry_data,
    validate_transition,
)

from conftest import T0, at, make_inquiry


class TestCoercion:

    @pytest.mark.parametrize("value,expected", [
        (0, InquiryStatus.REJECTED),
        (4, InquiryStatus.CLOSED),
        (InquiryStatus.ACCEPTED, InquiryStatus.ACCEPTED),
        ("accepted", InquiryStatus.ACCEPTED),
        ("In Progress", InquiryStatus.IN_PROGRESS),
        ("in_progress", InquiryStatus.IN_PROGRESS),
    ])
    def test_to_inquiry_status(self, value, expected):
        assert to_inquiry_status(value) == expected

    @pytest.mark.parametrize("value", [5, -1, "pending", None, True, 2.0])
    def test_rejects_unknown(self, value):
        with pytest.raises(ValidationError):
            to_inquiry_status(value)

    def test_labels(self):
        assert InquiryStatus.IN_PROGRESS.label == "In Progress"
        assert get_inquiry_status_label(3) == "In Progress"
        assert get_inquiry_status_label(9) == "unknown"
        assert get_inquiry_status_value("Closed") == 4
        assert get_inquiry_status_value("Whatever") == 1


class TestTransitions:

    @pytest.mark.parametrize("from_status,to_status", [
        (InquiryStatus.NEW, InquiryStatus.ACCEPTED),
        (InquiryStatus.NEW, InquiryStatus.REJECTED),
        (InquiryStatus.ACCEPTED, InquiryStatus.IN_PROGRESS),
        (InquiryStatus.IN_PROGRESS, InquiryStatus.CLOSED),
    ])
    def test_legal(self, from_status, to_status):
        assert is_valid_inquiry_status_transition(from_status, to_status)

    @pytest.mark.parametrize("from_status,to_status", [
        (InquiryStatus.NEW, InquiryStatus.CLOSED),
        (InquiryStatus.NEW, InquiryStatus.IN_PROGRESS),
        (InquiryStatus.ACCEPTED, InquiryStatus.NEW),
        (InquiryStatus.IN_PROGRESS, InquiryStatus.ACCEPTED),
    ])
    def test_illegal(self, from_status, to_status):
        assert not is_valid_inquiry_status_transition(from_status, to_status)

    @pytest.mark.parametrize("terminal", [InquiryStatus.CLOSED, InquiryStatus.REJECTED])
    def test_terminal_rejects_everything(self, terminal):
        assert is_terminal_inquiry_status(terminal)
        assert get_next_inquiry_statuses(terminal) == []
        inquiry = make_inquiry(status=int(terminal))
        for target in InquiryStatus:
            with pytest.raises(InvalidStateTransitionError):
                validate_transition(inquiry, terminal, target)


class TestValidateTransition:

    def test_returns_persisted_status(self):
        assert validate_transition(make_inquiry(status=1), 1, 2) == InquiryStatus.NEW

    def test_stale_caller(self):
        inquiry = make_inquiry(status=2)
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(inquiry, InquiryStatus.NEW, InquiryStatus.REJECTED)
        assert exc_info.value.details["current_status"] == "accepted"

    def test_direct_close_rejected(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(make_inquiry(status=1), "new", "closed")
        assert "Valid transitions" in exc_info.value.message

    def test_out_of_range_stored_status(self):
        with pytest.raises(ValidationError):
            validate_transition(make_inquiry(status=7), 1, 2)


class TestTransitionUpdate:

    @pytest.mark.parametrize("status,field", [
        (InquiryStatus.ACCEPTED, "accepted_at"),
        (InquiryStatus.REJECTED, "rejected_at"),
        (InquiryStatus.CLOSED, "closed_at"),
    ])
    def test_status_and_timestamp_together(self, status, field):
        assert transition_update(status, now=T0) == {"status": int(status), field: T0}

    def test_in_progress_has_no_timestamp(self):
        assert transition_update(InquiryStatus.IN_PROGRESS, now=T0) == {"status": 3}


class TestComputeInquiryStatus:

    def test_in_progress(self):
        result = compute_inquiry_status(make_inquiry(status=3, accepted_at=at(1)), now=at(2))
        assert result.status == InquiryStatus.IN_PROGRESS
        assert result.can_transition_to == [InquiryStatus.CLOSED]
        assert "Previously accepted and now in progress" in result.factors

    def test_invalid_value_defaults_to_new(self):
        result = compute_inquiry_status(make_inquiry(status=42))
        assert result.status == InquiryStatus.NEW
        assert result.factors[0] == "Invalid status value: 42"

    def test_terminal(self):
        result = compute_inquiry_status(make_inquiry(status=0, rejected_at=at(1)))
        assert result.is_terminal is True


class TestValidateInquiryData:

    def test_consistent(self):
        assert validate_inquiry_data(make_inquiry(status=2, accepted_at=at(1))) == []

    def test_status_without_timestamp(self):
        assert validate_inquiry_data(make_inquiry(status=4)) == ["Closed status requires closed_at date"]

    def test_timestamp_before_creation(self):
        errors = validate_inquiry_data(make_inquiry(status=0, rejected_at=at(-1)))
        assert "Rejected date cannot be before creation date" in errors

    def test_accepted_and_rejected(self):
        errors = validate_inquiry_data(make_inquiry(status=0, accepted_at=at(1), rejected_at=at(2)))
        assert "Inquiry cannot be both accepted and rejected" in errors

    def test_non_numeric(self):
        assert validate_inquiry_data(make_inquiry(status=None)) == ["Inquiry status must be a number"]


class TestHelpers:

    def test_description(self):
        assert get_inquiry_status_description(1) == "Inquiry has been submitted and is awaiting review"
        assert get_inquiry_status_description(12) == "Unknown inquiry status"

    def test_filter_group_and_statistics(self):
        inquiries = [
            make_inquiry(id="a", status=1),
            make_inquiry(id="b", status=1),
            make_inquiry(id="c", status=4, closed_at=at(1)),
        ]
        assert [i.id for i in filter_inquiries_by_status(inquiries, "new")] == ["a", "b"]
        grouped = group_inquiries_by_status(inquiries)
        assert {k: len(v) for k, v in grouped.items()} == {"New": 2, "Closed": 1}
        stats = get_inquiry_status_statistics(inquiries)
        assert stats["New"] == 2
        assert stats["Closed"] == 1
        assert stats["Accepted"] == 0
