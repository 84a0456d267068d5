"""
Eligibility gate for the notification socket.

The single place that decides whether a live connection may exist for
the current route and user. The manager and every binding call
``is_eligible``; no other module keeps its own list of public routes.
"""

import logging
from typing import Any, Optional

logger = logging.getLogger("meucuidador.gate")


# Pages where no socket may exist (landing and pre-login screens)
PUBLIC_ROUTES = frozenset({
    "/",
    "/login",
    "/register",
    "/forgot-password",
})


def normalize_route(route: Optional[str]) -> str:
    """Strip query string and fragment from a route."""
    if not route:
        return ""
    return route.split("?", 1)[0].split("#", 1)[0]


def is_public_route(route: Optional[str]) -> bool:
    clean = normalize_route(route)
    return clean == "" or clean in PUBLIC_ROUTES


def user_id_of(user: Any) -> Optional[int]:
    """Return the user's id, or None unless it is a positive int."""
    if user is None:
        return None
    if isinstance(user, dict):
        user_id = user.get("id")
    else:
        user_id = getattr(user, "id", None)
    # bool is an int subclass but never a valid identity
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        return None
    return user_id if user_id > 0 else None


def is_eligible(route: Optional[str], user: Any) -> bool:
    """
    Decide whether a live connection is permitted.

    Args:
        route: Current navigation location (path, may include query/fragment)
        user: Current user (mapping or object with ``id``), or None

    Returns:
        False on public routes or without a user carrying a positive int id
    """
    return not is_public_route(route) and user_id_of(user) is not None


def describe_ineligibility(route: Optional[str], user: Any) -> Optional[str]:
    """Human-readable reason the gate is closed, or None if it is open."""
    if user is None:
        return "no user"
    if user_id_of(user) is None:
        return "user without a valid id"
    if is_public_route(route):
        return f"public route {normalize_route(route) or '/'}"
    return None
