import pytest

from officehub.admin_ops import AdminOperations
from officehub.auth import MongoIdentityProvider, hash_password, verify_password
from officehub.errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from officehub.models import Role


@pytest.fixture
def provider(db):
    p = MongoIdentityProvider(db)
    p.create_user("admin-1", "admin@example.com", "secret-admin", "Alice", "Programming", Role.ADMIN)
    p.create_user("mgr-1", "mgr@example.com", "secret-mgr", "Priya", "Programming", Role.MANAGER)
    p.create_user("user-a", "john@example.com", "secret-john", "John", "Programming", Role.SPECIALIST)
    return p


@pytest.fixture
def ops(db, provider):
    return AdminOperations(db, provider, min_password_length=6)


def test_password_hashes_verify():
    stored = hash_password("hunter22")
    assert verify_password("hunter22", stored)
    assert not verify_password("hunter23", stored)
    assert not verify_password("hunter22", "garbage")


def test_login_and_verify(provider):
    token = provider.login("john@example.com", "secret-john")
    assert provider.verify(token) == "user-a"
    assert provider.verify("bogus") is None
    with pytest.raises(AuthenticationError):
        provider.login("john@example.com", "wrong")


def test_reset_password(ops, provider):
    old_token = provider.login("john@example.com", "secret-john")
    assert ops.reset_user_password("admin-1", "user-a", "brand-new") == {
        "success": True,
        "message": "Password reset successfully",
    }
    assert provider.verify(old_token) is None
    provider.login("john@example.com", "brand-new")


@pytest.mark.parametrize(
    "caller, user_id, password, error, kind",
    [
        (None, "user-a", "brand-new", AuthenticationError, "unauthenticated"),
        ("mgr-1", "user-a", "brand-new", AuthorizationError, "permission-denied"),
        ("admin-1", "", "brand-new", ValidationError, "invalid-argument"),
        ("admin-1", 42, "brand-new", ValidationError, "invalid-argument"),
        ("admin-1", "user-a", None, ValidationError, "invalid-argument"),
        ("admin-1", "user-a", "short", ValidationError, "invalid-argument"),
        ("admin-1", "admin-1", "brand-new", ValidationError, "invalid-argument"),
        ("admin-1", "nobody", "brand-new", NotFoundError, "not-found"),
    ],
)
def test_reset_password_errors(ops, caller, user_id, password, error, kind):
    with pytest.raises(error) as exc:
        ops.reset_user_password(caller, user_id, password)
    assert exc.value.kind == kind


def test_delete_user_cascades(ops, provider, db):
    db["tasks"].insert_many([{"assigneeId": "user-a"}, {"assigneeId": "mgr-1"}])
    db["departmentChats"].insert_one({"authorId": "user-a", "text": "hi"})
    db["companyChats"].insert_many([{"authorId": "user-a"}, {"authorId": "admin-1"}])
    db["leaveRequests"].insert_one({"userId": "user-a", "status": "Pending"})
    provider.login("john@example.com", "secret-john")

    assert ops.delete_user("admin-1", "user-a")["success"] is True

    assert db["tasks"].count_documents({}) == 1
    assert db["departmentChats"].count_documents({}) == 0
    assert db["companyChats"].count_documents({}) == 1
    assert db["leaveRequests"].count_documents({}) == 0
    assert db["userProfiles"].count_documents({"_id": "user-a"}) == 0
    assert db["sessions"].count_documents({"uid": "user-a"}) == 0
    assert not provider.exists("user-a")


def test_delete_user_guards(ops, db):
    db["tasks"].insert_one({"assigneeId": "user-a"})
    with pytest.raises(AuthorizationError):
        ops.delete_user("mgr-1", "user-a")
    with pytest.raises(ValidationError, match="cannot delete themselves"):
        ops.delete_user("admin-1", "admin-1")
    with pytest.raises(NotFoundError):
        ops.delete_user("admin-1", "nobody")
    with pytest.raises(AuthenticationError):
        ops.delete_user(None, "user-a")
    assert db["tasks"].count_documents({}) == 1
