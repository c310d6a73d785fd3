import logging
from datetime import date

import pytest

from officehub.errors import (
    AuthenticationError,
    AuthorizationError,
    InternalError,
    NotFoundError,
    StateError,
    ValidationError,
)
from officehub.leave import Decision, RequestLifecycleEngine
from officehub.main import leave_engine
from officehub.models import LeaveRequestInput, LeaveType, RequestStatus
from officehub.quota import QuotaPolicy
from officehub.settings import get_settings
from officehub.stores import RequestStore


@pytest.fixture
def store(db):
    return RequestStore.from_db(db)


@pytest.fixture
def engine(store, clock):
    return RequestLifecycleEngine(store, clock=clock)


def _input(days, n=None, reason="family event", type=LeaveType.LEAVE):
    return LeaveRequestInput(type=type, selected_days=days, number_of_days=len(days) if n is None else n, reason=reason)


# ---------- create ----------
def test_create_sorts_days_and_derives_range(engine, store, user_a, clock):
    req = engine.create_request(user_a, _input(["2026-01-12", "2026-01-10", "2026-01-11"]))

    assert req.status == RequestStatus.PENDING
    assert req.selected_days == [date(2026, 1, 10), date(2026, 1, 11), date(2026, 1, 12)]
    assert req.number_of_days == 3
    assert req.requested_at == clock.now

    doc = store.get(req.id)
    assert doc["selectedDays"] == ["2026-01-10", "2026-01-11", "2026-01-12"]
    assert doc["startDate"] == "2026-01-10"
    assert doc["endDate"] == "2026-01-12"
    assert doc["numberOfDays"] == 3
    assert doc["userName"] == "John"
    assert doc["department"] == "Programming"
    assert "reviewedBy" not in doc
    assert "reviewedAt" not in doc
    assert "rejectionReason" not in doc


def test_create_count_mismatch_names_expected_count(engine, store, user_a):
    with pytest.raises(ValidationError) as exc:
        engine.create_request(user_a, _input(["2026-01-10", "2026-01-11"], n=3))
    assert "exactly 3 days" in exc.value.message
    assert exc.value.field == "selectedDays"
    assert store.query() == []


def test_create_duplicate_days_count_once(engine, user_a):
    req = engine.create_request(user_a, _input(["2026-01-10", "2026-01-10"], n=1))
    assert req.selected_days == [date(2026, 1, 10)]

    with pytest.raises(ValidationError, match="exactly 2 days"):
        engine.create_request(user_a, _input(["2026-01-10", "2026-01-10"], n=2))


@pytest.mark.parametrize(
    "data, field",
    [
        (LeaveRequestInput(selected_days=["2026-01-10"], number_of_days=0, reason="x"), "numberOfDays"),
        (LeaveRequestInput(selected_days=[], number_of_days=2, reason="x"), "selectedDays"),
        (LeaveRequestInput(selected_days=["2026-01-10"], number_of_days=1, reason="   "), "reason"),
        (LeaveRequestInput(selected_days=["not-a-date"], number_of_days=1, reason="x"), "selectedDays"),
    ],
)
def test_create_rejects_bad_input(engine, user_a, data, field):
    with pytest.raises(ValidationError) as exc:
        engine.create_request(user_a, data)
    assert exc.value.field == field


def test_create_requires_identity(engine):
    with pytest.raises(AuthenticationError):
        engine.create_request(None, _input(["2026-01-10"]))


def test_create_enforces_quota(store, clock, user_a, manager):
    engine = RequestLifecycleEngine(store, quota=QuotaPolicy(max_leave=1, max_wfh=1), clock=clock)
    first = engine.create_request(user_a, _input(["2026-01-10"]))
    engine.review_request(manager, first.id, Decision.APPROVE)

    with pytest.raises(ValidationError) as exc:
        engine.create_request(user_a, _input(["2026-01-14"]))
    assert exc.value.field == "type"
    assert "leave quota" in exc.value.message

    # the WFH allowance is separate
    engine.create_request(user_a, _input(["2026-01-14"], type=LeaveType.WORK_FROM_HOME))


def test_default_wiring_does_not_limit_creates(db, monkeypatch, user_a, manager):
    monkeypatch.delenv("LEAVE_QUOTA_ENABLED", raising=False)
    get_settings.cache_clear()
    try:
        engine = leave_engine(db)
        assert engine.quota is None
        for day in ("2026-01-10", "2026-01-11"):
            req = engine.create_request(user_a, _input([day]))
            engine.review_request(manager, req.id, Decision.APPROVE)
        third = engine.create_request(user_a, _input(["2026-01-12"]))
    finally:
        get_settings.cache_clear()
    assert third.status == RequestStatus.PENDING


def test_quota_can_be_switched_on(db, monkeypatch):
    monkeypatch.setenv("LEAVE_QUOTA_ENABLED", "true")
    get_settings.cache_clear()
    try:
        assert leave_engine(db).quota is not None
    finally:
        get_settings.cache_clear()


# ---------- review ----------
def test_approve_then_second_review_is_state_error(engine, store, user_a, manager, other_manager):
    req = engine.create_request(user_a, _input(["2026-01-10", "2026-01-11", "2026-01-12"]))
    approved = engine.review_request(manager, req.id, Decision.APPROVE)

    assert approved.status == RequestStatus.APPROVED
    assert approved.state.reviewer.uid == manager.uid
    before = store.get(req.id)
    assert before["reviewedBy"] == "mgr-1"
    assert before["reviewedByName"] == "Priya"

    with pytest.raises(StateError):
        engine.review_request(other_manager, req.id, Decision.APPROVE)
    with pytest.raises(StateError):
        engine.review_request(other_manager, req.id, Decision.REJECT, "changed my mind")
    with pytest.raises(StateError):
        engine.review_request(other_manager, req.id, Decision.REJECT)
    assert store.get(req.id) == before


def test_reject_requires_reason_and_leaves_pending(engine, store, user_a, manager):
    req = engine.create_request(user_a, _input(["2026-01-10"]))

    with pytest.raises(ValidationError) as exc:
        engine.review_request(manager, req.id, Decision.REJECT, "  ")
    assert exc.value.field == "rejectionReason"
    assert store.get(req.id)["status"] == "Pending"

    rejected = engine.review_request(manager, req.id, Decision.REJECT, " team offsite ")
    assert rejected.status == RequestStatus.REJECTED
    doc = store.get(req.id)
    assert doc["status"] == "Rejected"
    assert doc["rejectionReason"] == "team offsite"


def test_only_admin_or_manager_can_review(engine, user_a, user_b):
    req = engine.create_request(user_a, _input(["2026-01-10"]))
    with pytest.raises(AuthorizationError):
        engine.review_request(user_b, req.id, Decision.APPROVE)


def test_reviewers_can_decide_their_own_request(engine, store, manager, admin):
    own = engine.create_request(manager, _input(["2026-01-10"]))
    approved = engine.review_request(manager, own.id, Decision.APPROVE)
    assert approved.status == RequestStatus.APPROVED
    assert store.get(own.id)["reviewedBy"] == manager.uid

    mine = engine.create_request(admin, _input(["2026-01-11"]))
    assert engine.review_request(admin, mine.id, Decision.APPROVE).status == RequestStatus.APPROVED


def test_review_unknown_request(engine, manager):
    with pytest.raises(NotFoundError):
        engine.review_request(manager, "64b7f0c2a1b2c3d4e5f60718", Decision.APPROVE)
    with pytest.raises(NotFoundError):
        engine.review_request(manager, "nope", Decision.APPROVE)


def test_pending_guard_is_a_conditional_write(engine, store, user_a, manager):
    req = engine.create_request(user_a, _input(["2026-01-10"]))
    engine.review_request(manager, req.id, Decision.APPROVE)
    assert store.update_if(req.id, {"status": "Pending"}, {"status": "Rejected"}) is False
    assert store.get(req.id)["status"] == "Approved"


# ---------- list / get ----------
def test_list_scopes_by_role(engine, user_a, user_b, manager, admin):
    owners = [user_a, user_b, user_a, manager, user_b, user_a]
    for i, who in enumerate(owners):
        engine.create_request(who, _input([f"2026-02-{i + 1:02d}"]))

    assert {r.user_id for r in engine.list_requests(user_a)} == {"user-a"}
    assert len(engine.list_requests(user_a)) == 3
    assert len(engine.list_requests(user_b)) == 2
    assert len(engine.list_requests(manager)) == 6
    assert len(engine.list_requests(admin)) == 6


def test_get_hides_other_users_requests(engine, user_a, user_b, manager):
    req = engine.create_request(user_a, _input(["2026-01-10"]))
    assert engine.get_request(user_a, req.id).id == req.id
    assert engine.get_request(manager, req.id).id == req.id
    with pytest.raises(NotFoundError):
        engine.get_request(user_b, req.id)


def test_legacy_range_records_expand_to_days(engine, store, manager):
    store.collection.insert_one(
        {
            "userId": "user-old",
            "type": "Leave",
            "startDate": "2025-12-30",
            "endDate": "2026-01-02",
            "numberOfDays": 4,
            "reason": "holidays",
            "status": "Approved",
            "reviewedBy": "mgr-1",
            "reviewedByName": "Priya",
            "reviewedAt": "2025-12-01T10:00:00Z",
            "requestedAt": "2025-11-30T10:00:00Z",
        }
    )
    (legacy,) = engine.list_requests(manager)
    assert legacy.selected_days == [date(2025, 12, 30), date(2025, 12, 31), date(2026, 1, 1), date(2026, 1, 2)]
    assert legacy.number_of_days == 4
    assert legacy.status == RequestStatus.APPROVED


def test_unreadable_records_are_skipped_in_lists(engine, store, user_a, manager, caplog):
    good = engine.create_request(user_a, _input(["2026-01-10"]))
    base = {
        "userId": "user-a",
        "type": "Leave",
        "selectedDays": ["2026-01-11"],
        "numberOfDays": 1,
        "reason": "x",
        "reviewedBy": "mgr-1",
        "reviewedAt": "2026-01-02T10:00:00Z",
        "requestedAt": "2026-01-01T10:00:00Z",
    }
    lowercase = store.collection.insert_one({**base, "status": "approved"}).inserted_id
    store.collection.insert_one({**base, "status": "Rejected"})  # no reason
    store.collection.insert_one({**base, "status": "Approved", "reviewedAt": None})

    with caplog.at_level(logging.WARNING, logger="officehub.leave"):
        listed = engine.list_requests(manager)

    assert [r.id for r in listed] == [good.id]
    assert [r.id for r in engine.list_requests(user_a)] == [good.id]
    assert caplog.text.count("Skipping unreadable leave request") >= 3

    with pytest.raises(InternalError):
        engine.get_request(manager, str(lowercase))
    with pytest.raises(InternalError):
        engine.review_request(manager, str(lowercase), Decision.APPROVE)


# ---------- delete ----------
def test_delete_requires_admin(engine, store, user_a, manager, admin):
    req = engine.create_request(user_a, _input(["2026-01-10"]))
    engine.review_request(manager, req.id, Decision.APPROVE)
    before = store.get(req.id)

    for who in (user_a, manager):
        with pytest.raises(AuthorizationError):
            engine.delete_request(who, req.id)
    assert store.get(req.id) == before

    engine.delete_request(admin, req.id)
    assert store.get(req.id) is None
    with pytest.raises(NotFoundError):
        engine.delete_request(admin, req.id)


# ---------- scenario ----------
def test_three_day_leave_is_approved_once(engine, store, user_a, manager, other_manager):
    req = engine.create_request(user_a, _input(["2026-01-10", "2026-01-11", "2026-01-12"], reason="family event"))
    assert req.status == RequestStatus.PENDING
    assert [d.isoformat() for d in req.selected_days] == ["2026-01-10", "2026-01-11", "2026-01-12"]

    approved = engine.review_request(manager, req.id, Decision.APPROVE)
    assert approved.status == RequestStatus.APPROVED
    assert store.get(req.id)["reviewedBy"] == manager.uid

    snapshot = store.get(req.id)
    with pytest.raises(StateError):
        engine.review_request(other_manager, req.id, Decision.APPROVE)
    assert store.get(req.id) == snapshot
