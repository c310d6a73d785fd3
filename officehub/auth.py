# officehub/auth.py
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import Any, Dict, Optional

from pymongo.database import Database

from . import db as dbnames
from .errors import AuthenticationError, NotFoundError
from .models import Identity, Role, utcnow

logger = logging.getLogger(__name__)

_ITERATIONS = 120_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _ITERATIONS)
    return f"pbkdf2_sha256${_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        _, iterations, salt, expected = stored.split("$", 3)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


class MongoIdentityProvider:
    """
    Accounts, sessions and profiles kept in MongoDB.
    Accounts hold credentials; profiles hold the display identity and role.
    """

    def __init__(self, db: Database):
        self.accounts = db[dbnames.USER_ACCOUNTS]
        self.sessions = db[dbnames.SESSIONS]
        self.profiles = db[dbnames.USER_PROFILES]

    def create_user(
        self,
        uid: str,
        email: str,
        password: str,
        display_name: str = "",
        department: str = "",
        role: Role = Role.VIEWER,
    ) -> Identity:
        now = utcnow().isoformat()
        self.accounts.insert_one(
            {"_id": uid, "email": email, "passwordHash": hash_password(password), "createdAt": now}
        )
        self.profiles.replace_one(
            {"_id": uid},
            {"displayName": display_name, "email": email, "department": department, "role": role.value},
            upsert=True,
        )
        return Identity(uid=uid, name=display_name, email=email, department=department, role=role)

    def exists(self, uid: str) -> bool:
        return self.accounts.count_documents({"_id": uid}, limit=1) > 0

    def login(self, email: str, password: str) -> str:
        account = self.accounts.find_one({"email": email})
        if not account or not verify_password(password, account.get("passwordHash", "")):
            raise AuthenticationError("Invalid credentials")
        token = secrets.token_hex(32)
        self.sessions.insert_one({"token": token, "uid": account["_id"], "createdAt": utcnow().isoformat()})
        logger.info("User %s signed in", account["_id"])
        return token

    def verify(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        session = self.sessions.find_one({"token": token})
        return session["uid"] if session else None

    def profile(self, uid: str) -> Optional[Identity]:
        doc: Optional[Dict[str, Any]] = self.profiles.find_one({"_id": uid})
        return Identity.from_profile(doc) if doc else None

    def update_password(self, uid: str, password: str) -> None:
        res = self.accounts.update_one({"_id": uid}, {"$set": {"passwordHash": hash_password(password)}})
        if res.matched_count == 0:
            raise NotFoundError("User not found", field="userId")
        # old sessions no longer prove the credential
        self.sessions.delete_many({"uid": uid})

    def delete_user(self, uid: str) -> None:
        res = self.accounts.delete_one({"_id": uid})
        if res.deleted_count == 0:
            raise NotFoundError("User not found", field="userId")
        self.sessions.delete_many({"uid": uid})
