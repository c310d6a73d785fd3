"""
Privileged user administration: password resets and user deletion.

Both operations are Admin-only, refuse to act on the caller's own account and
fail with an OfficeHubError whose ``kind`` is one of unauthenticated,
permission-denied, invalid-argument, not-found or internal.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from . import db as dbnames
from .auth import MongoIdentityProvider
from .errors import AuthenticationError, AuthorizationError, InternalError, NotFoundError, ValidationError
from .models import Identity, Role

logger = logging.getLogger(__name__)


class AdminOperations:
    def __init__(self, db: Database, identity: MongoIdentityProvider, min_password_length: int = 6):
        self.db = db
        self.identity = identity
        self.min_password_length = min_password_length

    def _verify_admin(self, caller_uid: Optional[str], action: str) -> Identity:
        if not caller_uid:
            raise AuthenticationError("User must be authenticated")
        caller = self.identity.profile(caller_uid)
        if caller is None or caller.role != Role.ADMIN:
            raise AuthorizationError(f"Only administrators can {action}")
        return caller

    @staticmethod
    def _require_user_id(user_id: Any) -> str:
        if not user_id or not isinstance(user_id, str):
            raise ValidationError("userId is required and must be a string", field="userId")
        return user_id

    def reset_user_password(self, caller_uid: Optional[str], user_id: Any, new_password: Any) -> Dict[str, Any]:
        self._verify_admin(caller_uid, "reset user passwords")
        user_id = self._require_user_id(user_id)
        if not new_password or not isinstance(new_password, str):
            raise ValidationError("newPassword is required and must be a string", field="newPassword")
        if len(new_password) < self.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.min_password_length} characters long", field="newPassword"
            )
        if user_id == caller_uid:
            raise ValidationError("Admins cannot reset their own password", field="userId")

        try:
            self.identity.update_password(user_id, new_password)
        except PyMongoError as e:
            logger.exception("Error resetting password for %s", user_id)
            raise InternalError("Failed to reset password") from e

        logger.info("Password for %s reset by %s", user_id, caller_uid)
        return {"success": True, "message": "Password reset successfully"}

    def delete_user(self, caller_uid: Optional[str], user_id: Any) -> Dict[str, Any]:
        self._verify_admin(caller_uid, "delete users")
        user_id = self._require_user_id(user_id)
        if user_id == caller_uid:
            raise ValidationError("Admins cannot delete themselves", field="userId")

        try:
            if not self.identity.exists(user_id):
                raise NotFoundError("User not found", field="userId")

            removed = {
                dbnames.TASKS: self.db[dbnames.TASKS].delete_many({"assigneeId": user_id}).deleted_count,
                dbnames.DEPARTMENT_CHATS: self.db[dbnames.DEPARTMENT_CHATS].delete_many({"authorId": user_id}).deleted_count,
                dbnames.COMPANY_CHATS: self.db[dbnames.COMPANY_CHATS].delete_many({"authorId": user_id}).deleted_count,
                dbnames.LEAVE_REQUESTS: self.db[dbnames.LEAVE_REQUESTS].delete_many({"userId": user_id}).deleted_count,
            }
            self.db[dbnames.USER_PROFILES].delete_one({"_id": user_id})
            self.identity.delete_user(user_id)
        except PyMongoError as e:
            logger.exception("Error deleting user %s", user_id)
            raise InternalError("Failed to delete user") from e

        logger.info("User %s deleted by %s, removed %s", user_id, caller_uid, removed)
        return {"success": True, "message": "User and all associated data deleted successfully"}
