"""Tests for the eligibility gate."""

from types import SimpleNamespace

import pytest

from meucuidador.realtime.gate import (
    PUBLIC_ROUTES,
    describe_ineligibility,
    is_eligible,
    is_public_route,
    normalize_route,
    user_id_of,
)


class TestPublicRoutes:
    @pytest.mark.parametrize("route", ["/", "/login", "/register", "/forgot-password", "", None])
    def test_public(self, route):
        assert is_public_route(route)

    @pytest.mark.parametrize("route", ["/home", "/medications", "/login/help", "/notifications"])
    def test_private(self, route):
        assert not is_public_route(route)

    def test_query_and_fragment_ignored(self):
        assert is_public_route("/login?next=/home")
        assert is_public_route("/register#terms")
        assert not is_public_route("/home?tab=today")

    def test_normalize_route(self):
        assert normalize_route("/home?tab=1#top") == "/home"
        assert normalize_route(None) == ""

    def test_public_routes_are_fixed(self):
        assert PUBLIC_ROUTES == {"/", "/login", "/register", "/forgot-password"}


class TestUserId:
    def test_mapping(self):
        assert user_id_of({"id": 3}) == 3

    def test_object(self):
        assert user_id_of(SimpleNamespace(id=9)) == 9

    @pytest.mark.parametrize(
        "user",
        [None, {}, {"id": None}, {"id": "3"}, {"id": 3.0}, {"id": True}, SimpleNamespace(name="x")],
    )
    def test_missing_or_not_numeric(self, user):
        assert user_id_of(user) is None


class TestIsEligible:
    def test_private_route_with_user(self):
        assert is_eligible("/home", {"id": 3})

    def test_public_route_with_user(self):
        assert not is_eligible("/login", {"id": 3})

    def test_no_user(self):
        assert not is_eligible("/home", None)

    def test_user_without_id(self):
        assert not is_eligible("/home", {"name": "Ana"})

    @pytest.mark.parametrize("user_id", [0, -4])
    def test_non_positive_id_is_not_a_user(self, user_id):
        assert user_id_of({"id": user_id}) is None
        assert not is_eligible("/home", {"id": user_id})


class TestDescribeIneligibility:
    def test_eligible(self):
        assert describe_ineligibility("/home", {"id": 1}) is None

    def test_reasons(self):
        assert describe_ineligibility("/home", None) == "no user"
        assert describe_ineligibility("/home", {"id": "1"}) == "user without a valid id"
        assert describe_ineligibility("/login?x=1", {"id": 1}) == "public route /login"
        assert describe_ineligibility("", {"id": 1}) == "public route /"

    def test_agrees_with_is_eligible(self):
        cases = [("/home", {"id": 1}), ("/", {"id": 1}), ("/home", None), ("/x", {"id": False})]
        for route, user in cases:
            assert (describe_ineligibility(route, user) is None) == is_eligible(route, user)
