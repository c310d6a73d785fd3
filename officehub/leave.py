# officehub/leave.py
from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import (
    AuthenticationError,
    AuthorizationError,
    InternalError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .models import (
    Approved,
    Identity,
    LeaveRequest,
    LeaveRequestInput,
    Rejected,
    RequestStatus,
    Reviewer,
    review_fields,
    utcnow,
)
from .policy import REVIEWER_ROLES, Scope, can_delete, can_list, can_transition
from .quota import QuotaPolicy
from .stores import RequestStore

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


_TARGET = {Decision.APPROVE: RequestStatus.APPROVED, Decision.REJECT: RequestStatus.REJECTED}


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


def _require_identity(actor: Optional[Identity]) -> Identity:
    if actor is None or not actor.uid:
        raise AuthenticationError("You must be signed in")
    return actor


_UNREADABLE = (KeyError, TypeError, ValueError)


def _parse(doc: Dict[str, Any]) -> LeaveRequest:
    try:
        return LeaveRequest.from_document(doc)
    except _UNREADABLE as e:
        logger.error("Leave request %s is unreadable: %s", doc.get("_id"), e)
        raise InternalError(f"Leave request {doc.get('_id')} is unreadable") from e


def normalize_days(raw_days: List[str]) -> List[date]:
    """Parses ISO days, drops duplicates and sorts ascending."""
    days = set()
    for raw in raw_days:
        try:
            days.add(date.fromisoformat(str(raw).strip()[:10]))
        except ValueError as e:
            raise ValidationError(f"'{raw}' is not a valid date", field="selectedDays") from e
    return sorted(days)


class RequestLifecycleEngine:
    """
    Pending -> Approved | Rejected, decided once by an Admin or Manager.
    Deletion is Admin-only and allowed from any state.
    """

    def __init__(
        self,
        store: RequestStore,
        quota: Optional[QuotaPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.quota = quota
        self.clock = clock

    def create_request(self, requester: Optional[Identity], data: LeaveRequestInput) -> LeaveRequest:
        requester = _require_identity(requester)

        n = data.number_of_days
        if n <= 0:
            raise ValidationError("Please enter a valid number of days", field="numberOfDays")
        if not data.selected_days:
            raise ValidationError("Please select at least one day from the calendar", field="selectedDays")
        days = normalize_days(data.selected_days)
        if len(days) != n:
            raise ValidationError(f"Please select exactly {n} day{_plural(n)} from the calendar", field="selectedDays")
        reason = data.reason.strip()
        if not reason:
            raise ValidationError("Please provide a reason for your request", field="reason")

        now = self.clock()
        if self.quota is not None:
            mine = self._parse_many(self.store.query({"userId": requester.uid}))
            allowed, message = self.quota.can_submit(mine, requester.uid, data.type, now.date())
            if not allowed:
                raise ValidationError(message or "Quota reached", field="type")

        req = LeaveRequest(
            user_id=requester.uid,
            user_name=requester.name,
            user_email=requester.email,
            department=requester.department,
            type=data.type,
            selected_days=days,
            number_of_days=len(days),
            reason=reason,
            requested_at=now,
        )
        req.id = self.store.create(req.to_document())
        logger.info("Leave request %s created by %s for %d day(s)", req.id, requester.uid, n)
        return req

    def review_request(
        self,
        reviewer: Optional[Identity],
        request_id: str,
        decision: Decision,
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        reviewer = _require_identity(reviewer)
        if reviewer.role not in REVIEWER_ROLES:
            raise AuthorizationError("Only admins and managers can review requests")

        doc = self.store.get(request_id)
        if doc is None:
            raise NotFoundError(f"Leave request {request_id} not found", field="requestId")
        req = _parse(doc)

        target = _TARGET[decision]
        if req.status != RequestStatus.PENDING:
            raise StateError(f"Request has already been {req.status.value.lower()}")
        is_self = req.user_id == reviewer.uid
        if not can_transition(reviewer.role, req.status, target, is_self):
            raise AuthorizationError("You are not allowed to review this request")
        if is_self:
            logger.info("Leave request %s is being reviewed by its own requester %s", request_id, reviewer.uid)

        at = self.clock()
        who = Reviewer(uid=reviewer.uid, name=reviewer.name)
        if decision == Decision.REJECT:
            reason = (reason or "").strip()
            if not reason:
                raise ValidationError("Please provide a reason for rejection", field="rejectionReason")
            state = Rejected(reviewer=who, at=at, reason=reason)
        else:
            state = Approved(reviewer=who, at=at)

        fields = {"status": state.status, **review_fields(state)}
        if not self.store.update_if(request_id, {"status": RequestStatus.PENDING.value}, fields):
            # another reviewer got there first, or the record vanished
            if self.store.get(request_id) is None:
                raise NotFoundError(f"Leave request {request_id} not found", field="requestId")
            raise StateError("Request has already been reviewed")

        req.state = state
        logger.info("Leave request %s %s by %s", request_id, state.status.lower(), reviewer.uid)
        return req

    def delete_request(self, actor: Optional[Identity], request_id: str) -> None:
        actor = _require_identity(actor)
        if not can_delete(actor.role):
            raise AuthorizationError("Only admins can delete requests")
        self.store.delete(request_id)
        logger.info("Leave request %s deleted by %s", request_id, actor.uid)

    def list_requests(self, actor: Optional[Identity]) -> List[LeaveRequest]:
        actor = _require_identity(actor)
        if can_list(actor.role) == Scope.ALL:
            docs = self.store.query()
        else:
            docs = self.store.query({"userId": actor.uid})
        return self._parse_many(docs)

    def get_request(self, actor: Optional[Identity], request_id: str) -> LeaveRequest:
        actor = _require_identity(actor)
        doc = self.store.get(request_id)
        if doc is None or (can_list(actor.role) == Scope.OWN and doc.get("userId") != actor.uid):
            raise NotFoundError(f"Leave request {request_id} not found", field="requestId")
        return _parse(doc)

    @staticmethod
    def _parse_many(docs: Iterable[Dict[str, Any]]) -> List[LeaveRequest]:
        """Documents that no longer parse are logged and left out."""
        out = []
        for doc in docs:
            try:
                out.append(LeaveRequest.from_document(doc))
            except _UNREADABLE as e:
                logger.warning("Skipping unreadable leave request %s: %s", doc.get("_id"), e)
        return out
