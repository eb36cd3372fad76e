"""
Unit tests for trip status transitions.
"""
from matatupay.models.enums import TripStatus
from matatupay.services.trips import can_transition


class TestTripStateMachine:
    def test_pending_to_confirmed(self):
        assert can_transition(TripStatus.pending, TripStatus.confirmed)

    def test_confirmed_to_completed(self):
        assert can_transition(TripStatus.confirmed, TripStatus.completed)

    def test_pending_to_completed_on_payment(self):
        assert can_transition(TripStatus.pending, TripStatus.completed)

    def test_completed_is_terminal(self):
        assert not can_transition(TripStatus.completed, TripStatus.pending)
        assert not can_transition(TripStatus.completed, TripStatus.confirmed)

    def test_no_backward_transition(self):
        assert not can_transition(TripStatus.confirmed, TripStatus.pending)

    def test_cannot_confirm_twice(self):
        assert not can_transition(TripStatus.confirmed, TripStatus.confirmed)
        assert not can_transition(TripStatus.completed, TripStatus.confirmed)
