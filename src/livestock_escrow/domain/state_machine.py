"""Pipeline state machine guards.

Uses python-statemachine to enforce legal state transitions at the domain level.
Services call ``validate_transition`` before issuing the guarded UPDATE that
actually moves a row, so an illegal move (e.g. READY_TO_START -> CLOSED by
way of ``confirm_delivery``) never reaches the database.

Transition tables:

    Offer    PENDING          -> WITHDRAWN | REJECTED | EXPIRED | ACCEPTED

    Load     DRAFT            -> PUBLISHED                       (publish)
             PUBLISHED        -> AWAITING_ESCROW                 (award)
             AWAITING_ESCROW  -> IN_TRANSIT                      (dispatch)
             IN_TRANSIT       -> DELIVERED                       (deliver)
             AWAITING_ESCROW | IN_TRANSIT | DELIVERED -> COMPLETED  (complete)
             DRAFT | PUBLISHED | AWAITING_ESCROW -> CANCELLED     (cancel_load)

    Trip     PENDING_ESCROW   -> READY_TO_START                  (fund_escrow)
             READY_TO_START   -> IN_PROGRESS                     (start_trip)
             IN_PROGRESS      -> DELIVERED_AWAITING_CONFIRMATION (mark_delivered)
             DELIVERED_AWAITING_CONFIRMATION -> DELIVERED_CONFIRMED (confirm_delivery)
             DELIVERED_*      -> DISPUTED                        (open_dispute)
             DISPUTED         -> DELIVERED_CONFIRMED             (cancel_dispute)
             any non-closed   -> CLOSED                          (close_trip)

    Payment  AWAITING_FUNDING -> ESCROW_FUNDED                   (confirm_funding)
             ESCROW_FUNDED    -> RELEASED_TO_HAULER | REFUNDED_TO_SHIPPER
                                 | SPLIT_BETWEEN_PARTIES
             AWAITING_FUNDING -> CANCELLED                       (cancel_payment)

    Dispute  OPEN             -> UNDER_REVIEW                    (start_review)
             OPEN | UNDER_REVIEW -> RESOLVED_*                   (resolve_*)
             OPEN             -> CANCELLED                       (cancel_dispute)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from livestock_escrow.domain.exceptions import InvalidStateTransitionError


class OfferStateMachine(StateMachine):
    """Hauler bid lifecycle."""

    PENDING = State(initial=True)
    WITHDRAWN = State(final=True)
    REJECTED = State(final=True)
    EXPIRED = State(final=True)
    ACCEPTED = State(final=True)

    withdraw = PENDING.to(WITHDRAWN)
    reject = PENDING.to(REJECTED)
    expire = PENDING.to(EXPIRED)
    accept = PENDING.to(ACCEPTED)


class LoadStateMachine(StateMachine):
    """The pipeline's view of a freight posting."""

    DRAFT = State(initial=True)
    PUBLISHED = State()
    AWAITING_ESCROW = State()
    IN_TRANSIT = State()
    DELIVERED = State()
    COMPLETED = State(final=True)
    CANCELLED = State(final=True)

    publish = DRAFT.to(PUBLISHED)
    award = PUBLISHED.to(AWAITING_ESCROW)
    dispatch = AWAITING_ESCROW.to(IN_TRANSIT)
    deliver = IN_TRANSIT.to(DELIVERED)
    complete = (
        AWAITING_ESCROW.to(COMPLETED) | IN_TRANSIT.to(COMPLETED) | DELIVERED.to(COMPLETED)
    )
    cancel_load = DRAFT.to(CANCELLED) | PUBLISHED.to(CANCELLED) | AWAITING_ESCROW.to(CANCELLED)


class TripStateMachine(StateMachine):
    """Trip execution lifecycle."""

    PENDING_ESCROW = State(initial=True)
    READY_TO_START = State()
    IN_PROGRESS = State()
    DELIVERED_AWAITING_CONFIRMATION = State()
    DELIVERED_CONFIRMED = State()
    DISPUTED = State()
    CLOSED = State(final=True)

    # Happy path
    fund_escrow = PENDING_ESCROW.to(READY_TO_START)
    start_trip = READY_TO_START.to(IN_PROGRESS)
    mark_delivered = IN_PROGRESS.to(DELIVERED_AWAITING_CONFIRMATION)
    confirm_delivery = DELIVERED_AWAITING_CONFIRMATION.to(DELIVERED_CONFIRMED)

    # Disputes
    open_dispute = DELIVERED_AWAITING_CONFIRMATION.to(DISPUTED) | DELIVERED_CONFIRMED.to(
        DISPUTED
    )
    cancel_dispute = DISPUTED.to(DELIVERED_CONFIRMED)

    # Settlement (release, refund, split, dispute resolution, unfunded cancel)
    close_trip = (
        PENDING_ESCROW.to(CLOSED)
        | READY_TO_START.to(CLOSED)
        | IN_PROGRESS.to(CLOSED)
        | DELIVERED_AWAITING_CONFIRMATION.to(CLOSED)
        | DELIVERED_CONFIRMED.to(CLOSED)
        | DISPUTED.to(CLOSED)
    )


class PaymentStateMachine(StateMachine):
    """Escrow payment lifecycle."""

    AWAITING_FUNDING = State(initial=True)
    ESCROW_FUNDED = State()
    RELEASED_TO_HAULER = State(final=True)
    REFUNDED_TO_SHIPPER = State(final=True)
    SPLIT_BETWEEN_PARTIES = State(final=True)
    CANCELLED = State(final=True)

    confirm_funding = AWAITING_FUNDING.to(ESCROW_FUNDED)
    release_to_hauler = ESCROW_FUNDED.to(RELEASED_TO_HAULER)
    refund_to_shipper = ESCROW_FUNDED.to(REFUNDED_TO_SHIPPER)
    split_between_parties = ESCROW_FUNDED.to(SPLIT_BETWEEN_PARTIES)
    cancel_payment = AWAITING_FUNDING.to(CANCELLED)


class DisputeStateMachine(StateMachine):
    """Dispute lifecycle. Resolutions are allowed straight from OPEN."""

    OPEN = State(initial=True)
    UNDER_REVIEW = State()
    RESOLVED_RELEASE_TO_HAULER = State(final=True)
    RESOLVED_REFUND_TO_SHIPPER = State(final=True)
    RESOLVED_SPLIT = State(final=True)
    CANCELLED = State(final=True)

    start_review = OPEN.to(UNDER_REVIEW)
    resolve_release = OPEN.to(RESOLVED_RELEASE_TO_HAULER) | UNDER_REVIEW.to(
        RESOLVED_RELEASE_TO_HAULER
    )
    resolve_refund = OPEN.to(RESOLVED_REFUND_TO_SHIPPER) | UNDER_REVIEW.to(
        RESOLVED_REFUND_TO_SHIPPER
    )
    resolve_split = OPEN.to(RESOLVED_SPLIT) | UNDER_REVIEW.to(RESOLVED_SPLIT)
    cancel_dispute = OPEN.to(CANCELLED)


def _machine_at(machine_cls: type[StateMachine], current_status: str) -> StateMachine:
    valid_values = {s.value for s in machine_cls.states}
    if current_status not in valid_values:
        valid = ", ".join(sorted(valid_values))
        raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
    return machine_cls(start_value=current_status)


def allowed_events(machine_cls: type[StateMachine], current_status: str) -> list[str]:
    """Return the event names that can fire from ``current_status``."""
    sm = _machine_at(machine_cls, str(current_status))
    return [event.id for event in sm.allowed_events]


def validate_transition(
    machine_cls: type[StateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    Creates a throwaway machine positioned at ``current_status``, fires the
    named event and returns the resulting status string.

    Args:
        machine_cls: One of the machines defined in this module.
        current_status: Current status value of the entity.
        event_name: The event to fire (e.g., "start_trip").

    Returns:
        The new status string after the transition.

    Raises:
        InvalidStateTransitionError: If the transition is illegal.
        ValueError: If the status or event name is unknown.
    """
    current_status = str(current_status)
    sm = _machine_at(machine_cls, current_status)

    if event_name not in {event.id for event in sm.events}:
        raise ValueError(
            f"Unknown event '{event_name}' for {machine_cls.__name__}. "
            f"Allowed events from {current_status}: {allowed_events(machine_cls, current_status)}"
        )

    try:
        sm.send(event_name)
    except TransitionNotAllowed as exc:
        raise InvalidStateTransitionError(
            current_state=current_status,
            attempted=event_name,
        ) from exc
    return str(sm.current_state.value)
