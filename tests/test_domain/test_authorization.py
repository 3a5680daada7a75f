"""Tests for the authorization guard (pure, no database)."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from livestock_escrow.domain.authorization import (
    Action,
    Caller,
    admin_permissions,
    dispute_permissions,
    ensure_permitted,
    load_permissions,
    offer_permissions,
    trip_permissions,
)
from livestock_escrow.domain.enums import Role
from livestock_escrow.domain.exceptions import ForbiddenError

LOAD = SimpleNamespace(shipper_company_id="S1")
OFFER = SimpleNamespace(hauler_company_id="H1")
TRIP = SimpleNamespace(hauler_company_id="H1", assigned_driver_id="D1")
DISPUTE = SimpleNamespace(opened_by_user_id="u-shipper")

SHIPPER = Caller(user_id="u-shipper", role=Role.SHIPPER_OWNER, company_id="S1")
SHIPPER_STAFF = Caller(user_id="u-staff", role=Role.SHIPPER_STAFF, company_id="S1")
HAULER = Caller(user_id="u-hauler", role=Role.HAULER_OWNER, company_id="H1")
OTHER_HAULER = Caller(user_id="u-other", role=Role.HAULER_DISPATCHER, company_id="H2")
DRIVER = Caller(user_id="D1", role=Role.DRIVER, company_id="H1")
OTHER_DRIVER = Caller(user_id="D2", role=Role.DRIVER, company_id="H1")
ADMIN = Caller(user_id="u-admin", role=Role.SUPER_ADMIN)
SUPPORT = Caller(user_id="u-support", role=Role.READ_ONLY_SUPPORT)


class TestLoadPermissions:
    def test_shipper_lists_everything_but_cannot_bid(self) -> None:
        permitted = load_permissions(SHIPPER, LOAD)
        assert Action.LIST_ALL_OFFERS in permitted
        assert Action.CREATE_OFFER not in permitted

    def test_hauler_bids_and_lists_own(self) -> None:
        permitted = load_permissions(OTHER_HAULER, LOAD)
        assert permitted == {Action.CREATE_OFFER, Action.LIST_OWN_OFFERS}

    def test_driver_cannot_bid(self) -> None:
        assert Action.CREATE_OFFER not in load_permissions(DRIVER, LOAD)

    def test_hauler_without_company_cannot_bid(self) -> None:
        caller = Caller(user_id="u-x", role=Role.HAULER_OWNER)
        assert load_permissions(caller, LOAD) == frozenset()

    @pytest.mark.parametrize("caller", [ADMIN, SUPPORT])
    def test_admin_and_support_list_everything(self, caller: Caller) -> None:
        assert load_permissions(caller, LOAD) == {Action.LIST_ALL_OFFERS}


class TestOfferPermissions:
    def test_hauler_withdraws_own_offer(self) -> None:
        assert offer_permissions(HAULER, OFFER, LOAD) == {Action.VIEW_OFFER, Action.WITHDRAW_OFFER}

    def test_shipper_accepts_and_rejects(self) -> None:
        permitted = offer_permissions(SHIPPER_STAFF, OFFER, LOAD)
        assert {Action.ACCEPT_OFFER, Action.REJECT_OFFER, Action.VIEW_OFFER} <= permitted
        assert Action.WITHDRAW_OFFER not in permitted

    def test_admin_only_views(self) -> None:
        assert offer_permissions(ADMIN, OFFER, LOAD) == {Action.VIEW_OFFER}

    def test_other_hauler_has_nothing(self) -> None:
        assert offer_permissions(OTHER_HAULER, OFFER, LOAD) == frozenset()


class TestTripPermissions:
    def test_hauler_assigns_and_progresses(self) -> None:
        permitted = trip_permissions(HAULER, TRIP, LOAD)
        assert {
            Action.ASSIGN_DRIVER,
            Action.ASSIGN_VEHICLE,
            Action.START_TRIP,
            Action.MARK_DELIVERED,
            Action.OPEN_DISPUTE,
        } <= permitted
        assert Action.CONFIRM_DELIVERY not in permitted

    def test_assigned_driver(self) -> None:
        permitted = trip_permissions(DRIVER, TRIP, LOAD)
        assert {Action.VIEW_TRIP, Action.START_TRIP, Action.MARK_DELIVERED} <= permitted
        assert Action.OPEN_DISPUTE not in permitted

    def test_driver_of_hauler_company_acts_for_the_hauler(self) -> None:
        permitted = trip_permissions(OTHER_DRIVER, TRIP, LOAD)
        assert {Action.START_TRIP, Action.ASSIGN_DRIVER} <= permitted
        assert Action.CONFIRM_DELIVERY not in permitted

    def test_driver_from_another_company_needs_assignment(self) -> None:
        outside_driver = Caller(user_id="D9", role=Role.DRIVER, company_id="H7")
        assert trip_permissions(outside_driver, TRIP, LOAD) == frozenset()
        assigned = SimpleNamespace(hauler_company_id="H1", assigned_driver_id="D9")
        assert Action.MARK_DELIVERED in trip_permissions(outside_driver, assigned, LOAD)

    def test_shipper_confirms_and_funds(self) -> None:
        permitted = trip_permissions(SHIPPER, TRIP, LOAD)
        expected = {Action.CONFIRM_DELIVERY, Action.CREATE_FUNDING_INTENT, Action.START_TRIP}
        assert expected <= permitted
        assert Action.MARK_DELIVERED not in permitted
        assert Action.ASSIGN_DRIVER not in permitted

    def test_support_reads_only(self) -> None:
        assert trip_permissions(SUPPORT, TRIP, LOAD) == {
            Action.VIEW_TRIP,
            Action.VIEW_TRIP_EVENTS,
            Action.VIEW_PAYMENT,
            Action.VIEW_DISPUTE,
        }

    def test_stranger_has_nothing(self) -> None:
        assert trip_permissions(OTHER_HAULER, TRIP, LOAD) == frozenset()


class TestDisputePermissions:
    def test_opener_cancels(self) -> None:
        assert Action.CANCEL_DISPUTE in dispute_permissions(SHIPPER, DISPUTE, TRIP, LOAD)

    def test_counterparty_views_but_cannot_cancel(self) -> None:
        permitted = dispute_permissions(HAULER, DISPUTE, TRIP, LOAD)
        assert Action.VIEW_DISPUTE in permitted
        assert Action.CANCEL_DISPUTE not in permitted

    def test_admin_resolves(self) -> None:
        permitted = dispute_permissions(ADMIN, DISPUTE, TRIP, LOAD)
        assert {Action.CANCEL_DISPUTE, Action.RESOLVE_DISPUTE, Action.REVIEW_DISPUTE} <= permitted


class TestAdminPermissions:
    def test_only_super_admin(self) -> None:
        assert admin_permissions(SUPPORT) == frozenset()
        assert Action.FORCE_RELEASE in admin_permissions(ADMIN)


class TestEnsurePermitted:
    def test_allowed_action_passes(self) -> None:
        ensure_permitted(ADMIN, Action.FORCE_REFUND, admin_permissions(ADMIN), "payment 1")

    def test_refusal_raises_forbidden(self) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            ensure_permitted(HAULER, Action.FORCE_REFUND, admin_permissions(HAULER), "payment 1")
        assert exc_info.value.code == "FORBIDDEN"
        assert exc_info.value.resource == "payment 1"
