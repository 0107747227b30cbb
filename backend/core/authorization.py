"""Admin authorization.

Admin access is granted when any strategy in ``ADMIN_STRATEGIES`` accepts the
caller. Strategies are evaluated in order and each one can be tested or
removed on its own.
"""
from typing import Any, Callable, Mapping, Sequence

from core.config import settings

AdminStrategy = Callable[[str, Mapping[str, Any]], bool]


def has_admin_claim(subject_id: str, claims: Mapping[str, Any]) -> bool:
    """Custom claim set through the identity provider's admin tooling."""
    return claims.get("admin") is True


def is_allowlisted_admin(subject_id: str, claims: Mapping[str, Any]) -> bool:
    """Static fallback list for accounts whose claim has not been set."""
    return bool(subject_id) and subject_id in settings.ADMIN_FALLBACK_IDS


ADMIN_STRATEGIES: Sequence[AdminStrategy] = (has_admin_claim, is_allowlisted_admin)


def is_authorized(
    subject_id: str,
    claims: Mapping[str, Any],
    strategies: Sequence[AdminStrategy] = ADMIN_STRATEGIES,
) -> bool:
    return any(strategy(subject_id, claims or {}) for strategy in strategies)
