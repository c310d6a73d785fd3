"""
Centralised access rules for the leave workflow and the KPI ledger.

Every role check the engines perform goes through one of these functions.
"""
from __future__ import annotations

from enum import Enum

from .models import RequestStatus, Role

REVIEWER_ROLES = frozenset({Role.ADMIN, Role.MANAGER})

# Pending is the only state with outgoing transitions.
_TRANSITIONS = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


class Scope(str, Enum):
    ALL = "all"
    OWN = "own"


def is_legal_transition(from_state: RequestStatus, to_state: RequestStatus) -> bool:
    return to_state in _TRANSITIONS[from_state]


def can_transition(role: Role, from_state: RequestStatus, to_state: RequestStatus, is_self: bool) -> bool:
    """
    Admins and Managers may move a Pending request to Approved or Rejected,
    including requests they filed themselves.
    """
    if role not in REVIEWER_ROLES:
        return False
    return is_legal_transition(from_state, to_state)


def can_list(role: Role) -> Scope:
    return Scope.ALL if role in REVIEWER_ROLES else Scope.OWN


def can_delete(role: Role) -> bool:
    return role == Role.ADMIN


def can_manage_kpi(role: Role) -> bool:
    return role == Role.ADMIN


def can_award(role: Role) -> bool:
    """Scoring completed work is a reviewer decision."""
    return role in REVIEWER_ROLES
