# officehub/models.py
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Accepts datetimes or ISO strings (a trailing 'Z' included); naive values are UTC."""
    if isinstance(value, datetime):
        ts = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class CamelModel(BaseModel):
    """Documents are stored with the camelCase keys the web client reads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- identities ----------
class Role(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    DEPARTMENT_HEAD = "DepartmentHead"
    SPECIALIST = "Specialist"
    VIEWER = "Viewer"

    @classmethod
    def parse(cls, raw: Any) -> "Role":
        """Unknown or missing roles fall back to Viewer."""
        try:
            return cls(raw)
        except ValueError:
            logger.warning("Invalid role %r, defaulting to Viewer", raw)
            return cls.VIEWER


class Identity(BaseModel):
    uid: str
    name: str = ""
    email: str = ""
    department: str = ""
    role: Role = Role.VIEWER

    @classmethod
    def from_profile(cls, doc: Dict[str, Any]) -> "Identity":
        return cls(
            uid=str(doc.get("uid") or doc.get("_id")),
            name=doc.get("displayName", ""),
            email=doc.get("email", ""),
            department=doc.get("department", ""),
            role=Role.parse(doc.get("role", Role.VIEWER.value)),
        )


# ---------- leave requests ----------
class LeaveType(str, Enum):
    LEAVE = "Leave"
    WORK_FROM_HOME = "Work From Home"


class RequestStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class Reviewer(BaseModel):
    uid: str
    name: str = ""


class Pending(BaseModel):
    status: Literal["Pending"] = "Pending"


class Approved(BaseModel):
    status: Literal["Approved"] = "Approved"
    reviewer: Reviewer
    at: datetime


class Rejected(BaseModel):
    status: Literal["Rejected"] = "Rejected"
    reviewer: Reviewer
    at: datetime
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("rejection reason must not be empty")
        return v


RequestState = Annotated[Union[Pending, Approved, Rejected], Field(discriminator="status")]


class LeaveRequestInput(CamelModel):
    """What a requester submits; checked by the lifecycle engine."""

    type: LeaveType = LeaveType.LEAVE
    selected_days: List[str] = []
    number_of_days: int = 0
    reason: str = ""


class LeaveRequest(BaseModel):
    id: Optional[str] = None
    user_id: str
    user_name: str = ""
    user_email: str = ""
    department: str = ""
    type: LeaveType
    selected_days: List[date]
    number_of_days: int
    reason: str
    state: RequestState = Field(default_factory=Pending)
    requested_at: datetime

    @model_validator(mode="after")
    def _check_days(self) -> "LeaveRequest":
        if not self.selected_days:
            raise ValueError("selected_days must not be empty")
        if any(a >= b for a, b in zip(self.selected_days, self.selected_days[1:])):
            raise ValueError("selected_days must be strictly increasing")
        if self.number_of_days != len(self.selected_days):
            raise ValueError("number_of_days must equal the number of selected days")
        return self

    @property
    def status(self) -> RequestStatus:
        return RequestStatus(self.state.status)

    @property
    def start_date(self) -> date:
        return self.selected_days[0]

    @property
    def end_date(self) -> date:
        return self.selected_days[-1]

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "userId": self.user_id,
            "userName": self.user_name,
            "userEmail": self.user_email,
            "department": self.department,
            "type": self.type.value,
            "selectedDays": [d.isoformat() for d in self.selected_days],
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "numberOfDays": self.number_of_days,
            "reason": self.reason,
            "status": self.state.status,
            "requestedAt": self.requested_at.isoformat(),
        }
        doc.update(review_fields(self.state))
        return doc

    def to_api(self) -> Dict[str, Any]:
        return {"id": self.id, **self.to_document()}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "LeaveRequest":
        days = doc.get("selectedDays") or []
        if not days and doc.get("startDate") and doc.get("endDate"):
            # older records only carried a range
            days = date_range(doc["startDate"], doc["endDate"])
        selected = sorted({date.fromisoformat(str(d)[:10]) for d in days})

        status = doc.get("status", RequestStatus.PENDING.value)
        state: Union[Pending, Approved, Rejected]
        if status == RequestStatus.PENDING.value:
            state = Pending()
        elif status in (RequestStatus.APPROVED.value, RequestStatus.REJECTED.value):
            if not doc.get("reviewedAt"):
                raise ValueError(f"{status} request {doc.get('_id')} has no reviewedAt")
            reviewer = Reviewer(uid=doc.get("reviewedBy", ""), name=doc.get("reviewedByName", ""))
            at = parse_timestamp(doc["reviewedAt"])
            if status == RequestStatus.APPROVED.value:
                state = Approved(reviewer=reviewer, at=at)
            else:
                state = Rejected(reviewer=reviewer, at=at, reason=doc.get("rejectionReason", ""))
        else:
            raise ValueError(f"Unknown request status {status!r}")

        return cls(
            id=str(doc["_id"]) if doc.get("_id") is not None else None,
            user_id=doc["userId"],
            user_name=doc.get("userName", ""),
            user_email=doc.get("userEmail", ""),
            department=doc.get("department", ""),
            type=LeaveType(doc.get("type", LeaveType.LEAVE.value)),
            selected_days=selected,
            number_of_days=len(selected),
            reason=doc.get("reason", ""),
            state=state,
            requested_at=parse_timestamp(doc["requestedAt"]),
        )


def review_fields(state: Union[Pending, Approved, Rejected]) -> Dict[str, Any]:
    """Flattened reviewed* fields for a state; empty for Pending."""
    if isinstance(state, Pending):
        return {}
    fields: Dict[str, Any] = {
        "reviewedBy": state.reviewer.uid,
        "reviewedByName": state.reviewer.name,
        "reviewedAt": state.at.isoformat(),
    }
    if isinstance(state, Rejected):
        fields["rejectionReason"] = state.reason
    return fields


def date_range(start: Any, end: Any) -> List[str]:
    """Inclusive list of ISO days between two ISO dates."""
    d = date.fromisoformat(str(start)[:10])
    last = date.fromisoformat(str(end)[:10])
    out = []
    while d <= last:
        out.append(d.isoformat())
        d += timedelta(days=1)
    return out


# ---------- KPI ----------
class KpiKey(BaseModel):
    """Composite (user, department) key for a KPI record."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    department: str

    def to_filter(self) -> Dict[str, str]:
        return {"userId": self.user_id, "department": self.department}

    def __str__(self) -> str:
        return f"{self.user_id}_{self.department}"


class Assignee(BaseModel):
    id: str
    name: str = ""


class KpiRecord(CamelModel):
    user_id: str
    user_name: str = ""
    department: str
    tasks_assigned: int = 0
    tasks_completed_on_time: int = 0
    tasks_completed_late: int = 0
    effective_points: float = 0.0
    score: float = 0.0
    version: int = 0
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @property
    def key(self) -> KpiKey:
        return KpiKey(user_id=self.user_id, department=self.department)

    @classmethod
    def empty(cls, key: KpiKey, user_name: str = "", at: Optional[datetime] = None) -> "KpiRecord":
        return cls(user_id=key.user_id, user_name=user_name, department=key.department, created_at=at)

    def rescored(self) -> "KpiRecord":
        if self.tasks_assigned > 0:
            self.score = self.effective_points / self.tasks_assigned * 100
        else:
            self.score = 0.0
        return self

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "KpiRecord":
        data = {k: v for k, v in doc.items() if k != "_id"}
        return cls.model_validate(data)


class HistoryKind(str, Enum):
    AWARD = "award"
    REVERSAL = "reversal"
    RESET = "reset"


class KpiHistoryEntry(CamelModel):
    id: Optional[str] = Field(default=None, exclude=True)
    kind: HistoryKind = HistoryKind.AWARD
    user_id: str
    user_name: str = ""
    department: str
    points: float
    on_time: Optional[bool] = None
    work_unit_id: str
    task_details: str = ""
    month: str = ""
    year: Optional[int] = None
    reason: str = ""
    awarded_at: datetime
    original_award_id: Optional[str] = None
    reversed_at: Optional[datetime] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    previous_points: Optional[float] = None

    @property
    def key(self) -> KpiKey:
        return KpiKey(user_id=self.user_id, department=self.department)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "KpiHistoryEntry":
        data = {k: v for k, v in doc.items() if k != "_id"}
        entry = cls.model_validate(data)
        entry.id = str(doc["_id"]) if doc.get("_id") is not None else None
        return entry


class OutcomeStatus(str, Enum):
    AWARDED = "awarded"
    SKIPPED = "skipped"
    REVERSED = "reversed"
    FAILED = "failed"


class KeyOutcome(BaseModel):
    key: KpiKey
    status: OutcomeStatus
    record: Optional[KpiRecord] = None
    error: Optional[str] = None


class AwardResult(BaseModel):
    work_unit_id: str
    department: str
    on_time: bool
    points: float
    outcomes: List[KeyOutcome] = []

    def _with(self, status: OutcomeStatus) -> List[KeyOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def awarded(self) -> List[KeyOutcome]:
        return self._with(OutcomeStatus.AWARDED)

    @property
    def skipped(self) -> List[KeyOutcome]:
        return self._with(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> List[KeyOutcome]:
        return self._with(OutcomeStatus.FAILED)

    @property
    def partial(self) -> bool:
        return bool(self.failed) and len(self.failed) < len(self.outcomes)


class RemovalResult(BaseModel):
    work_unit_id: str
    outcomes: List[KeyOutcome] = []
    entries_reversed: int = 0

    @property
    def failed(self) -> List[KeyOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]


class ResetResult(BaseModel):
    success: bool
    records_reset: int = 0
    error: Optional[str] = None
