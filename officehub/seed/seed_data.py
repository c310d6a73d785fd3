# officehub/seed/seed_data.py
"""
Seed demo data for OfficeHub.
ALWAYS clears accounts, profiles, leave requests and KPI data and inserts fresh data.
"""

import logging
from datetime import date, timedelta

from officehub import db as dbnames
from officehub.auth import MongoIdentityProvider
from officehub.db import ensure_indexes, get_db
from officehub.models import LeaveRequestInput, LeaveType, Role
from officehub.leave import RequestLifecycleEngine
from officehub.stores import RequestStore

logger = logging.getLogger(__name__)

DEFAULT_DEPARTMENTS = ["Programming", "3D Design", "UI/UX"]

DEMO_USERS = [
    ("admin-001", "admin@officehub.local", "Alice", "Programming", Role.ADMIN),
    ("mgr-001", "manager@officehub.local", "Priya", "Programming", Role.MANAGER),
    ("emp-001", "john@officehub.local", "John", "Programming", Role.SPECIALIST),
    ("emp-002", "sarah@officehub.local", "Sarah", "Programming", Role.SPECIALIST),
    ("emp-003", "zara@officehub.local", "Zara", "UI/UX", Role.DEPARTMENT_HEAD),
    ("emp-004", "sam@officehub.local", "Sam", "3D Design", Role.VIEWER),
]


def seed_demo(db=None, password: str = "changeme"):
    db = db if db is not None else get_db()

    # Wipe old
    for name in (
        dbnames.USER_ACCOUNTS,
        dbnames.USER_PROFILES,
        dbnames.SESSIONS,
        dbnames.LEAVE_REQUESTS,
        dbnames.KPI_RECORDS,
        dbnames.KPI_HISTORY,
        dbnames.KPI_AWARD_CLAIMS,
    ):
        db[name].delete_many({})
    ensure_indexes(db)

    provider = MongoIdentityProvider(db)
    people = {}
    for uid, email, name, dept, role in DEMO_USERS:
        people[uid] = provider.create_user(uid, email, password, display_name=name, department=dept, role=role)

    # A couple of pending requests starting next week
    engine = RequestLifecycleEngine(RequestStore.from_db(db))
    base = date.today() + timedelta(days=7)
    engine.create_request(
        people["emp-001"],
        LeaveRequestInput(
            type=LeaveType.LEAVE,
            selected_days=[(base + timedelta(days=i)).isoformat() for i in range(3)],
            number_of_days=3,
            reason="family event",
        ),
    )
    engine.create_request(
        people["emp-003"],
        LeaveRequestInput(
            type=LeaveType.WORK_FROM_HOME,
            selected_days=[base.isoformat()],
            number_of_days=1,
            reason="contractor visit at home",
        ),
    )

    logger.info("Demo data reseeded: users=%d, leave requests=2", len(DEMO_USERS))
    return people


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_demo()
