# Overview: Immutable identity of the staff member a mutation is attributed to.

from __future__ import annotations

from dataclasses import dataclass

ROLE_ADMIN = "admin"
ROLE_CASHIER = "cashier"

ROLES = (ROLE_ADMIN, ROLE_CASHIER)


@dataclass(frozen=True)
class ActorContext:
    """
    Attribution for stock mutations.

    Supplied by the authentication layer and passed by parameter through every
    service call. The core only records user_id; it never checks whether the
    actor is allowed to act (routes do that with require_role).
    """
    user_id: int
    role: str = ROLE_CASHIER
