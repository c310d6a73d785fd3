# officehub/quota.py
from __future__ import annotations

from calendar import monthrange
from datetime import date
from typing import Dict, Iterable, Optional, Tuple

from .models import LeaveRequest, LeaveType, RequestStatus


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1


def _boundary(year: int, month: int, period_day: int) -> date:
    # short months end the period on their last day
    return date(year, month, min(period_day, monthrange(year, month)[1]))


def quota_period(today: date, period_day: int = 25) -> Tuple[date, date]:
    """
    Returns [start, end) of the quota period containing `today`.
    Periods run from `period_day` of one month to `period_day` of the next.
    """
    if not 1 <= period_day <= 31:
        raise ValueError(f"period_day must be between 1 and 31, got {period_day}")
    this_month = _boundary(today.year, today.month, period_day)
    if today >= this_month:
        return this_month, _boundary(*_shift_month(today.year, today.month, 1), period_day)
    return _boundary(*_shift_month(today.year, today.month, -1), period_day), this_month


def quota_usage(
    requests: Iterable[LeaveRequest],
    user_id: str,
    today: date,
    period_day: int = 25,
) -> Dict[LeaveType, int]:
    """Approved requests per type with at least one day inside the current period."""
    start, end = quota_period(today, period_day)
    usage = {LeaveType.LEAVE: 0, LeaveType.WORK_FROM_HOME: 0}
    for req in requests:
        if req.user_id != user_id or req.status != RequestStatus.APPROVED:
            continue
        if any(start <= d < end for d in req.selected_days):
            usage[req.type] += 1
    return usage


class QuotaPolicy:
    def __init__(self, max_leave: int = 2, max_wfh: int = 2, period_day: int = 25):
        self.limits = {LeaveType.LEAVE: max_leave, LeaveType.WORK_FROM_HOME: max_wfh}
        if not 1 <= period_day <= 31:
            raise ValueError(f"period_day must be between 1 and 31, got {period_day}")
        self.period_day = period_day
    def can_submit(
        self,
        requests: Iterable[LeaveRequest],
        user_id: str,
        leave_type: LeaveType,
        today: date,
    ) -> Tuple[bool, Optional[str]]:
        usage = quota_usage(requests, user_id, today, self.period_day)
        limit = self.limits[leave_type]
        if usage[leave_type] < limit:
            return True, None
        if leave_type == LeaveType.LEAVE:
            return False, f"You have reached your leave quota ({limit} leaves per period)."
        return False, f"You have reached your work from home quota ({limit} requests per period)."
