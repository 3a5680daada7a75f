"""Authorization guard.

Pure functions that map a caller and the entity being touched to the set of
actions the caller may perform. Services compute the permitted set and call
``ensure_permitted`` before any state is read for mutation; nothing here
touches the database.

Parties are identified by company: the shipper is the Load's shipper company,
the hauler is the Offer's or Trip's hauler company. The assigned driver is
identified by user id and must hold the DRIVER role. SUPER_ADMIN carries the
admin-only actions and may view everything; READ_ONLY_SUPPORT may view.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol

import structlog

from livestock_escrow.domain.enums import HAULER_ROLES, Role
from livestock_escrow.domain.exceptions import ForbiddenError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Caller:
    """Identity supplied by the upstream authentication collaborator."""

    user_id: str
    role: Role
    company_id: str | None = None


class Action(enum.StrEnum):
    # Offers
    CREATE_OFFER = "CREATE_OFFER"
    VIEW_OFFER = "VIEW_OFFER"
    LIST_ALL_OFFERS = "LIST_ALL_OFFERS"
    LIST_OWN_OFFERS = "LIST_OWN_OFFERS"
    WITHDRAW_OFFER = "WITHDRAW_OFFER"
    REJECT_OFFER = "REJECT_OFFER"
    ACCEPT_OFFER = "ACCEPT_OFFER"

    # Trips
    VIEW_TRIP = "VIEW_TRIP"
    VIEW_TRIP_EVENTS = "VIEW_TRIP_EVENTS"
    ASSIGN_DRIVER = "ASSIGN_DRIVER"
    ASSIGN_VEHICLE = "ASSIGN_VEHICLE"
    START_TRIP = "START_TRIP"
    MARK_DELIVERED = "MARK_DELIVERED"
    CONFIRM_DELIVERY = "CONFIRM_DELIVERY"

    # Escrow
    CREATE_FUNDING_INTENT = "CREATE_FUNDING_INTENT"
    VIEW_PAYMENT = "VIEW_PAYMENT"

    # Disputes
    OPEN_DISPUTE = "OPEN_DISPUTE"
    VIEW_DISPUTE = "VIEW_DISPUTE"
    CANCEL_DISPUTE = "CANCEL_DISPUTE"

    # Admin
    REVIEW_DISPUTE = "REVIEW_DISPUTE"
    RESOLVE_DISPUTE = "RESOLVE_DISPUTE"
    FORCE_RELEASE = "FORCE_RELEASE"
    FORCE_REFUND = "FORCE_REFUND"
    CANCEL_ESCROW = "CANCEL_ESCROW"
    RUN_AUTO_RELEASE = "RUN_AUTO_RELEASE"


class _LoadLike(Protocol):
    shipper_company_id: str


class _OfferLike(Protocol):
    hauler_company_id: str


class _TripLike(Protocol):
    hauler_company_id: str
    assigned_driver_id: str | None


class _DisputeLike(Protocol):
    opened_by_user_id: str


# --- Predicates ---


def is_admin(caller: Caller) -> bool:
    return caller.role == Role.SUPER_ADMIN


def is_support(caller: Caller) -> bool:
    return caller.role == Role.READ_ONLY_SUPPORT


def is_hauler_role(caller: Caller) -> bool:
    return caller.role in HAULER_ROLES


def _same_company(caller: Caller, company_id: str | None) -> bool:
    return caller.company_id is not None and caller.company_id == company_id


def is_shipper_for_load(caller: Caller, load: _LoadLike) -> bool:
    return _same_company(caller, load.shipper_company_id)


def is_hauler_for_offer(caller: Caller, offer: _OfferLike) -> bool:
    return _same_company(caller, offer.hauler_company_id)


def is_hauler_for_trip(caller: Caller, trip: _TripLike) -> bool:
    return _same_company(caller, trip.hauler_company_id)


def is_assigned_driver(caller: Caller, trip: _TripLike) -> bool:
    return (
        caller.role == Role.DRIVER
        and trip.assigned_driver_id is not None
        and caller.user_id == trip.assigned_driver_id
    )


# --- Permission sets ---

_VIEW_ACTIONS = frozenset(
    {
        Action.VIEW_OFFER,
        Action.LIST_ALL_OFFERS,
        Action.VIEW_TRIP,
        Action.VIEW_TRIP_EVENTS,
        Action.VIEW_PAYMENT,
        Action.VIEW_DISPUTE,
    }
)


def load_permissions(caller: Caller, load: _LoadLike) -> frozenset[Action]:
    """Actions on a Load's offer book (creating and listing offers)."""
    permitted: set[Action] = set()
    if is_shipper_for_load(caller, load):
        permitted.add(Action.LIST_ALL_OFFERS)
    elif is_hauler_role(caller) and caller.company_id is not None:
        permitted |= {Action.CREATE_OFFER, Action.LIST_OWN_OFFERS}
    elif caller.company_id is not None:
        permitted.add(Action.LIST_OWN_OFFERS)
    if is_admin(caller) or is_support(caller):
        permitted.add(Action.LIST_ALL_OFFERS)
    return frozenset(permitted)


def offer_permissions(caller: Caller, offer: _OfferLike, load: _LoadLike) -> frozenset[Action]:
    permitted: set[Action] = set()
    if is_hauler_for_offer(caller, offer):
        permitted |= {Action.VIEW_OFFER, Action.WITHDRAW_OFFER}
    if is_shipper_for_load(caller, load):
        permitted |= {Action.VIEW_OFFER, Action.REJECT_OFFER, Action.ACCEPT_OFFER}
    if is_admin(caller) or is_support(caller):
        permitted.add(Action.VIEW_OFFER)
    return frozenset(permitted)


def trip_permissions(caller: Caller, trip: _TripLike, load: _LoadLike) -> frozenset[Action]:
    """Actions on a Trip and on the escrow payment attached to it."""
    permitted: set[Action] = set()
    shipper = is_shipper_for_load(caller, load)
    hauler = is_hauler_for_trip(caller, trip)
    driver = is_assigned_driver(caller, trip)
    admin = is_admin(caller)

    if shipper or hauler or admin or is_support(caller):
        permitted |= {
            Action.VIEW_TRIP,
            Action.VIEW_TRIP_EVENTS,
            Action.VIEW_PAYMENT,
            Action.VIEW_DISPUTE,
        }
    if driver:
        permitted.add(Action.VIEW_TRIP)

    if hauler:
        permitted |= {Action.ASSIGN_DRIVER, Action.ASSIGN_VEHICLE}
    if hauler or driver or shipper or admin:
        permitted.add(Action.START_TRIP)
    if hauler or driver or admin:
        permitted.add(Action.MARK_DELIVERED)
    if shipper:
        permitted |= {Action.CONFIRM_DELIVERY, Action.CREATE_FUNDING_INTENT}
    if shipper or hauler or admin:
        permitted.add(Action.OPEN_DISPUTE)
    return frozenset(permitted)


def dispute_permissions(
    caller: Caller,
    dispute: _DisputeLike,
    trip: _TripLike,
    load: _LoadLike,
) -> frozenset[Action]:
    permitted: set[Action] = set()
    if (
        is_shipper_for_load(caller, load)
        or is_hauler_for_trip(caller, trip)
        or is_admin(caller)
        or is_support(caller)
    ):
        permitted.add(Action.VIEW_DISPUTE)
    if caller.user_id == dispute.opened_by_user_id or is_admin(caller):
        permitted.add(Action.CANCEL_DISPUTE)
    permitted |= admin_permissions(caller)
    return frozenset(permitted)


def admin_permissions(caller: Caller) -> frozenset[Action]:
    if not is_admin(caller):
        return frozenset()
    return frozenset(
        {
            Action.REVIEW_DISPUTE,
            Action.RESOLVE_DISPUTE,
            Action.FORCE_RELEASE,
            Action.FORCE_REFUND,
            Action.CANCEL_ESCROW,
            Action.RUN_AUTO_RELEASE,
        }
        | _VIEW_ACTIONS
    )


def ensure_permitted(
    caller: Caller,
    action: Action,
    permitted: frozenset[Action],
    resource: str,
) -> None:
    """Raise ForbiddenError unless ``action`` is in ``permitted``.

    Refusals are logged for audit with the caller and the attempted action.
    """
    if action in permitted:
        return
    logger.warning(
        "authz.forbidden",
        user_id=caller.user_id,
        company_id=caller.company_id,
        role=str(caller.role),
        action=str(action),
        resource=resource,
    )
    raise ForbiddenError(action=str(action), resource=resource)
