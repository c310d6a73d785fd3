# officehub/reports.py
from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

import pandas as pd

from .models import KpiRecord, LeaveRequest, RequestStatus

KPI_COLUMNS = [
    "userId",
    "userName",
    "department",
    "tasksAssigned",
    "tasksCompletedOnTime",
    "tasksCompletedLate",
    "effectivePoints",
    "score",
]

CALENDAR_COLUMNS = ["date", "requestId", "userId", "userName", "department", "type", "status"]


def _kpi_frame(records: Iterable[KpiRecord]) -> pd.DataFrame:
    rows = [r.model_dump(by_alias=True) for r in records]
    if not rows:
        return pd.DataFrame(columns=KPI_COLUMNS)
    return pd.DataFrame(rows)[KPI_COLUMNS]


# ---------- KPI ----------
def leaderboard(records: Iterable[KpiRecord], department: Optional[str] = None) -> pd.DataFrame:
    """
    One row per (user, department), best score first.
    Ties break on effective points, then name.
    """
    df = _kpi_frame(records)
    if department is not None:
        df = df[df["department"] == department]
    df = df.sort_values(
        ["score", "effectivePoints", "userName"],
        ascending=[False, False, True],
        kind="mergesort",
    )
    return df.reset_index(drop=True)


def user_rollup(records: Iterable[KpiRecord]) -> pd.DataFrame:
    """Totals per user across departments, score recomputed from the sums."""
    df = _kpi_frame(records)
    if df.empty:
        return pd.DataFrame(columns=["userId", "userName", "departments", *KPI_COLUMNS[3:]])

    out = df.groupby("userId", as_index=False).agg(
        userName=("userName", "last"),
        departments=("department", lambda s: ", ".join(sorted(s.unique()))),
        tasksAssigned=("tasksAssigned", "sum"),
        tasksCompletedOnTime=("tasksCompletedOnTime", "sum"),
        tasksCompletedLate=("tasksCompletedLate", "sum"),
        effectivePoints=("effectivePoints", "sum"),
    )
    assigned = out["tasksAssigned"].where(out["tasksAssigned"] > 0)
    out["score"] = (out["effectivePoints"] / assigned * 100).fillna(0.0)
    return out.sort_values(["score", "userName"], ascending=[False, True]).reset_index(drop=True)


# ---------- leave calendar ----------
def leave_calendar(
    requests: Iterable[LeaveRequest],
    start: date,
    end: date,
    include_pending: bool = True,
) -> pd.DataFrame:
    """
    Days off/WFH within [start, end] inclusive, one row per (request, day).
    Rejected requests never show.
    """
    shown = {RequestStatus.APPROVED}
    if include_pending:
        shown.add(RequestStatus.PENDING)

    rows = []
    for req in requests:
        if req.status not in shown:
            continue
        for d in req.selected_days:
            if start <= d <= end:
                rows.append(
                    {
                        "date": d.isoformat(),
                        "requestId": req.id,
                        "userId": req.user_id,
                        "userName": req.user_name,
                        "department": req.department,
                        "type": req.type.value,
                        "status": req.status.value,
                    }
                )
    if not rows:
        return pd.DataFrame(columns=CALENDAR_COLUMNS)
    return pd.DataFrame(rows, columns=CALENDAR_COLUMNS).sort_values(["date", "userName"]).reset_index(drop=True)
