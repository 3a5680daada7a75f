"""Tests for the pipeline state machine guards.

These tests verify that:
    1. The happy path of every entity is allowed.
    2. Illegal moves are blocked and reported as InvalidStateTransitionError.
    3. Terminal states accept no events.
    4. Unknown statuses and events are programming errors (ValueError).
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from livestock_escrow.domain.exceptions import InvalidStateTransitionError
from livestock_escrow.domain.state_machine import (
    DisputeStateMachine,
    LoadStateMachine,
    OfferStateMachine,
    PaymentStateMachine,
    TripStateMachine,
    allowed_events,
    validate_transition,
)


class TestTripHappyPath:
    """PENDING_ESCROW -> ... -> CLOSED."""

    def test_full_lifecycle(self) -> None:
        sm = TripStateMachine()
        assert sm.current_state.id == "PENDING_ESCROW"

        sm.fund_escrow()
        assert sm.current_state.id == "READY_TO_START"

        sm.start_trip()
        assert sm.current_state.id == "IN_PROGRESS"

        sm.mark_delivered()
        assert sm.current_state.id == "DELIVERED_AWAITING_CONFIRMATION"

        sm.confirm_delivery()
        assert sm.current_state.id == "DELIVERED_CONFIRMED"

        sm.close_trip()
        assert sm.current_state.id == "CLOSED"

    def test_cannot_start_before_funding(self) -> None:
        sm = TripStateMachine()
        with pytest.raises(TransitionNotAllowed):
            sm.start_trip()


class TestTripDisputes:
    @pytest.mark.parametrize(
        "status", ["DELIVERED_AWAITING_CONFIRMATION", "DELIVERED_CONFIRMED"]
    )
    def test_dispute_after_delivery(self, status: str) -> None:
        assert validate_transition(TripStateMachine, status, "open_dispute") == "DISPUTED"

    @pytest.mark.parametrize("status", ["PENDING_ESCROW", "READY_TO_START", "IN_PROGRESS"])
    def test_no_dispute_before_delivery(self, status: str) -> None:
        with pytest.raises(InvalidStateTransitionError):
            validate_transition(TripStateMachine, status, "open_dispute")

    def test_cancelled_dispute_returns_to_confirmed(self) -> None:
        assert (
            validate_transition(TripStateMachine, "DISPUTED", "cancel_dispute")
            == "DELIVERED_CONFIRMED"
        )

    def test_closed_trip_is_terminal(self) -> None:
        assert allowed_events(TripStateMachine, "CLOSED") == []


class TestLoadMachine:
    def test_award_to_completion(self) -> None:
        assert validate_transition(LoadStateMachine, "PUBLISHED", "award") == "AWAITING_ESCROW"
        assert validate_transition(LoadStateMachine, "AWAITING_ESCROW", "dispatch") == "IN_TRANSIT"
        assert validate_transition(LoadStateMachine, "IN_TRANSIT", "deliver") == "DELIVERED"
        assert validate_transition(LoadStateMachine, "DELIVERED", "complete") == "COMPLETED"

    def test_cannot_award_twice(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            validate_transition(LoadStateMachine, "AWAITING_ESCROW", "award")

    def test_unfunded_load_can_be_cancelled(self) -> None:
        moved = validate_transition(LoadStateMachine, "AWAITING_ESCROW", "cancel_load")
        assert moved == "CANCELLED"

    def test_load_in_transit_cannot_be_cancelled(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            validate_transition(LoadStateMachine, "IN_TRANSIT", "cancel_load")


class TestOfferMachine:
    @pytest.mark.parametrize(
        ("event", "target"),
        [
            ("withdraw", "WITHDRAWN"),
            ("reject", "REJECTED"),
            ("expire", "EXPIRED"),
            ("accept", "ACCEPTED"),
        ],
    )
    def test_pending_offer_moves(self, event: str, target: str) -> None:
        assert validate_transition(OfferStateMachine, "PENDING", event) == target

    @pytest.mark.parametrize("status", ["WITHDRAWN", "REJECTED", "EXPIRED", "ACCEPTED"])
    def test_closed_offer_cannot_be_accepted(self, status: str) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(OfferStateMachine, status, "accept")
        assert exc_info.value.current_state == status
        assert exc_info.value.code == "INVALID_STATE"


class TestPaymentMachine:
    def test_settlements_require_funding(self) -> None:
        for event in ("release_to_hauler", "refund_to_shipper", "split_between_parties"):
            with pytest.raises(InvalidStateTransitionError):
                validate_transition(PaymentStateMachine, "AWAITING_FUNDING", event)

    def test_funded_payment_settles(self) -> None:
        assert (
            validate_transition(PaymentStateMachine, "ESCROW_FUNDED", "split_between_parties")
            == "SPLIT_BETWEEN_PARTIES"
        )

    def test_funded_payment_cannot_be_cancelled(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            validate_transition(PaymentStateMachine, "ESCROW_FUNDED", "cancel_payment")

    def test_released_payment_is_terminal(self) -> None:
        assert allowed_events(PaymentStateMachine, "RELEASED_TO_HAULER") == []


class TestDisputeMachine:
    def test_resolve_straight_from_open(self) -> None:
        assert (
            validate_transition(DisputeStateMachine, "OPEN", "resolve_refund")
            == "RESOLVED_REFUND_TO_SHIPPER"
        )

    def test_resolve_after_review(self) -> None:
        assert validate_transition(DisputeStateMachine, "OPEN", "start_review") == "UNDER_REVIEW"
        assert (
            validate_transition(DisputeStateMachine, "UNDER_REVIEW", "resolve_split")
            == "RESOLVED_SPLIT"
        )

    def test_only_open_disputes_cancel(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            validate_transition(DisputeStateMachine, "UNDER_REVIEW", "cancel_dispute")

    def test_allowed_events_from_open(self) -> None:
        assert set(allowed_events(DisputeStateMachine, "OPEN")) == {
            "start_review",
            "resolve_release",
            "resolve_refund",
            "resolve_split",
            "cancel_dispute",
        }


class TestValidateTransitionErrors:
    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            validate_transition(TripStateMachine, "TELEPORTED", "start_trip")

    def test_unknown_event(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition(TripStateMachine, "IN_PROGRESS", "teleport")
