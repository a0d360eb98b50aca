"""
Route-level access policy.

A static table maps (HTTP method, path pattern) to the roles allowed to call
it. Rules are checked in order and the first match wins. `PUBLIC` routes need
no identity; `AUTHENTICATED` routes accept any role.

Per-resource ownership is checked separately, in the handlers, by
`RBACMiddleware.is_self_or_admin`.
"""
import re
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple

from customer_service.auth.models import Identity, Role

ANY_METHOD = "*"

PUBLIC: FrozenSet[Role] = frozenset()
AUTHENTICATED: FrozenSet[Role] = frozenset(Role)
ADMIN_ONLY: FrozenSet[Role] = frozenset({Role.ADMIN})
ADMIN_OR_CUSTOMER: FrozenSet[Role] = frozenset({Role.ADMIN, Role.CUSTOMER})


@dataclass(frozen=True)
class RouteRule:
    method: str
    pattern: "re.Pattern[str]"
    roles: FrozenSet[Role]

    def matches(self, method: str, path: str) -> bool:
        if self.method != ANY_METHOD and self.method != method.upper():
            return False
        return self.pattern.fullmatch(path) is not None


def rule(method: str, pattern: str, roles: FrozenSet[Role]) -> RouteRule:
    return RouteRule(method, re.compile(pattern), roles)


ROUTE_RULES: Tuple[RouteRule, ...] = (
    # Service endpoints and API docs
    rule(ANY_METHOD, r"/|/health|/docs.*|/redoc.*|/openapi\.json", PUBLIC),
    rule("GET", r"/customers/ping", PUBLIC),

    # Registration and login
    rule("POST", r"/customers/?", PUBLIC),
    rule("POST", r"/customers/auth/login", PUBLIC),

    # Admin-only
    rule("GET", r"/customers/?", ADMIN_ONLY),
    rule("DELETE", r"/customers/[^/]+", ADMIN_ONLY),
    rule("PUT", r"/customers/[^/]+/role", ADMIN_ONLY),

    # Customer and admin (handlers check ownership)
    rule("GET", r"/customers/.+", ADMIN_OR_CUSTOMER),
    rule("PUT", r"/customers/.+", ADMIN_OR_CUSTOMER),
)

DEFAULT_RULE = rule(ANY_METHOD, r".*", AUTHENTICATED)


def match_rule(method: str, path: str) -> RouteRule:
    """Return the first rule matching the request, or the catch-all rule."""
    for candidate in ROUTE_RULES:
        if candidate.matches(method, path):
            return candidate
    return DEFAULT_RULE


def required_roles(method: str, path: str) -> FrozenSet[Role]:
    return match_rule(method, path).roles


def is_public(method: str, path: str) -> bool:
    return not required_roles(method, path)


def is_allowed(identity: Optional[Identity], method: str, path: str) -> bool:
    """Route-level decision only; ownership is not considered here."""
    roles = required_roles(method, path)
    if not roles:
        return True
    return identity is not None and identity.role in roles


def is_self_or_admin(identity: Identity, customer_id: str) -> bool:
    """Ownership predicate: the caller is the customer, or an admin."""
    return identity.is_admin or identity.owns(customer_id)


def is_own_email_or_admin(identity: Identity, email: str) -> bool:
    return identity.is_admin or identity.email.lower() == email.lower()
