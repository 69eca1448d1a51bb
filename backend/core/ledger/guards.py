"""Authorization checks shared by the token engines.

They run before any state is read, on the actor passed explicitly by the caller.
"""

from ledger.exceptions import LedgerUnauthorized


def require_authenticated(actor) -> None:
    if actor is None or not getattr(actor, "is_authenticated", False) or not actor.is_active:
        raise LedgerUnauthorized("An authenticated, active user is required.")


def require_user_type(actor, *user_types: str) -> None:
    require_authenticated(actor)
    if actor.user_type not in user_types:
        allowed = ", ".join(user_types)
        raise LedgerUnauthorized(f"Only {allowed} users can perform this action.")


def require_approved_government(actor) -> None:
    require_user_type(actor, "government")
    if not actor.is_approved_government:
        raise LedgerUnauthorized("Government account is not approved.")


def require_approved_citizen(actor) -> None:
    require_user_type(actor, "citizen")
    if not actor.is_approved:
        raise LedgerUnauthorized("Citizen account is pending approval.")
