from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.database import Database

from .admin_ops import AdminOperations
from .auth import MongoIdentityProvider
from .db import get_db
from .errors import HTTP_STATUS, AuthenticationError, AuthorizationError, OfficeHubError
from .kpi import KpiAwardEngine
from .leave import Decision, RequestLifecycleEngine
from .models import Assignee, Identity, LeaveRequestInput
from .policy import can_award
from .quota import QuotaPolicy
from .reports import leaderboard
from .settings import get_settings
from .stores import KpiLedger, RequestStore

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="OfficeHub API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)


@app.exception_handler(OfficeHubError)
async def handle_office_error(request: Request, exc: OfficeHubError):
    return JSONResponse(status_code=HTTP_STATUS.get(exc.kind, 500), content={"error": exc.to_dict()})


# ---------- dependencies ----------
def get_database() -> Database:
    return get_db()


def get_identity_provider(db: Database = Depends(get_database)) -> MongoIdentityProvider:
    return MongoIdentityProvider(db)


def current_identity(
    authorization: Optional[str] = Header(default=None),
    provider: MongoIdentityProvider = Depends(get_identity_provider),
) -> Optional[Identity]:
    parts = authorization.split() if authorization else []
    token = parts[-1] if parts else None
    uid = provider.verify(token)
    if not uid:
        return None
    return provider.profile(uid) or Identity(uid=uid)


def leave_engine(db: Database = Depends(get_database)) -> RequestLifecycleEngine:
    s = get_settings()
    quota = None
    if s.leave_quota_enabled:
        quota = QuotaPolicy(s.leave_quota_max_leave, s.leave_quota_max_wfh, s.leave_quota_period_day)
    return RequestLifecycleEngine(RequestStore.from_db(db), quota=quota)


def kpi_engine(db: Database = Depends(get_database)) -> KpiAwardEngine:
    s = get_settings()
    ledger = KpiLedger.from_db(db, max_retries=s.kpi_max_retries)
    return KpiAwardEngine(ledger, ontime_points=s.kpi_ontime_points, late_points=s.kpi_late_points)


def admin_ops(
    db: Database = Depends(get_database),
    provider: MongoIdentityProvider = Depends(get_identity_provider),
) -> AdminOperations:
    return AdminOperations(db, provider, min_password_length=get_settings().min_password_length)


def _require_awarder(who: Optional[Identity]) -> Identity:
    if who is None:
        raise AuthenticationError("You must be signed in")
    if not can_award(who.role):
        raise AuthorizationError("Only admins and managers can score work units")
    return who


# ---------- request bodies ----------
class LoginRequest(BaseModel):
    email: str
    password: str


class ReviewRequest(BaseModel):
    decision: Decision
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")


class AwardRequest(BaseModel):
    work_unit_id: str = Field(alias="workUnitId")
    department: str
    assignees: List[Assignee]
    month: str = ""
    year: int
    task_details: str = Field(default="", alias="taskDetails")
    deadline: datetime
    completed_at: datetime = Field(alias="completedAt")


# ---------- routes ----------
@app.get("/")
def root():
    return {"ok": True, "service": "OfficeHub"}


@app.post("/auth/login")
def login(payload: LoginRequest, provider: MongoIdentityProvider = Depends(get_identity_provider)):
    token = provider.login(payload.email, payload.password)
    return {"token": token, "uid": provider.verify(token)}


@app.get("/leave-requests")
def list_leave_requests(
    who: Optional[Identity] = Depends(current_identity),
    engine: RequestLifecycleEngine = Depends(leave_engine),
):
    return [r.to_api() for r in engine.list_requests(who)]


@app.post("/leave-requests", status_code=201)
def create_leave_request(
    payload: LeaveRequestInput,
    who: Optional[Identity] = Depends(current_identity),
    engine: RequestLifecycleEngine = Depends(leave_engine),
):
    return engine.create_request(who, payload).to_api()


@app.get("/leave-requests/{request_id}")
def get_leave_request(
    request_id: str,
    who: Optional[Identity] = Depends(current_identity),
    engine: RequestLifecycleEngine = Depends(leave_engine),
):
    return engine.get_request(who, request_id).to_api()


@app.post("/leave-requests/{request_id}/review")
def review_leave_request(
    request_id: str,
    payload: ReviewRequest,
    who: Optional[Identity] = Depends(current_identity),
    engine: RequestLifecycleEngine = Depends(leave_engine),
):
    return engine.review_request(who, request_id, payload.decision, payload.rejection_reason).to_api()


@app.delete("/leave-requests/{request_id}")
def delete_leave_request(
    request_id: str,
    who: Optional[Identity] = Depends(current_identity),
    engine: RequestLifecycleEngine = Depends(leave_engine),
):
    engine.delete_request(who, request_id)
    return {"ok": True}


@app.get("/kpi")
def kpi_board(
    department: Optional[str] = None,
    who: Optional[Identity] = Depends(current_identity),
    engine: KpiAwardEngine = Depends(kpi_engine),
):
    if who is None:
        raise AuthenticationError("You must be signed in")
    records = engine.ledger.query_by_department(department) if department else engine.ledger.all()
    return json.loads(leaderboard(records, department).to_json(orient="records"))


@app.post("/kpi/awards")
def award_kpi(
    payload: AwardRequest,
    who: Optional[Identity] = Depends(current_identity),
    engine: KpiAwardEngine = Depends(kpi_engine),
):
    _require_awarder(who)
    result = engine.award_points(
        payload.work_unit_id,
        payload.department,
        payload.assignees,
        payload.month,
        payload.year,
        payload.task_details,
        payload.deadline,
        payload.completed_at,
    )
    return {**result.model_dump(mode="json"), "partial": result.partial}


@app.delete("/kpi/awards/{work_unit_id}")
def remove_kpi(
    work_unit_id: str,
    who: Optional[Identity] = Depends(current_identity),
    engine: KpiAwardEngine = Depends(kpi_engine),
):
    _require_awarder(who)
    return engine.remove_points(work_unit_id).model_dump(mode="json")


@app.post("/kpi/reset")
def reset_kpi(
    who: Optional[Identity] = Depends(current_identity),
    engine: KpiAwardEngine = Depends(kpi_engine),
):
    return engine.reset_all(who).model_dump()


@app.post("/admin/reset-password")
def reset_password(
    data: Dict[str, Any] = Body(...),
    who: Optional[Identity] = Depends(current_identity),
    ops: AdminOperations = Depends(admin_ops),
):
    return ops.reset_user_password(who.uid if who else None, data.get("userId"), data.get("newPassword"))


@app.post("/admin/delete-user")
def delete_user(
    data: Dict[str, Any] = Body(...),
    who: Optional[Identity] = Depends(current_identity),
    ops: AdminOperations = Depends(admin_ops),
):
    return ops.delete_user(who.uid if who else None, data.get("userId"))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
