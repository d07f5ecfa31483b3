"""
SQL store tests against SQLite, in memory and on disk.
"""
import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio

from cityguard.auth.audit import AuditService, SQLAuditLog
from cityguard.auth.models import AuditAction, AuditResult, SessionMetadata, User
from cityguard.auth.session_management import SQLSessionStore
from cityguard.auth.users import SQLUserStore
from cityguard.db import Database, IntegrityError
from cityguard.schemas.user import UserType, build_default_profile


@pytest_asyncio.fixture
async def database():
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_tables()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def file_database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'stores.db'}")
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def users(database):
    return SQLUserStore(database, timeout=5)


@pytest.fixture
def sessions(database, clock):
    return SQLSessionStore(database, max_active_sessions=5, retention=timedelta(days=30), clock=clock, timeout=5)


def new_user(clock, user_id="u1", email="a@x.com", user_type=UserType.EMPLOYEE) -> User:
    return User(
        id=user_id,
        email=email,
        password_hash="hash",
        user_type=user_type,
        first_name="Ada",
        last_name="Lovelace",
        profile=build_default_profile(user_type),
        created_at=clock(),
        updated_at=clock(),
    )


@pytest.mark.asyncio
async def test_health_check(database):
    assert await database.health_check()


class TestSQLUserStore:
    @pytest.mark.asyncio
    async def test_create_and_load(self, users, clock):
        await users.create(new_user(clock))

        by_email = await users.get_by_email("  A@X.com ")
        by_id = await users.get_by_id("u1")
        assert by_email.id == by_id.id == "u1"
        assert by_id.user_type is UserType.EMPLOYEE
        assert by_id.profile["badgeLevel"] == "NOVICE"
        assert by_id.failed_attempts == 0
        assert await users.get_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_email_violates_constraint(self, users, clock):
        await users.create(new_user(clock))
        with pytest.raises(IntegrityError):
            await users.create(new_user(clock, user_id="u2"))

    @pytest.mark.asyncio
    async def test_failed_attempts_lock_at_threshold(self, users, clock):
        await users.create(new_user(clock))
        lock_until = clock() + timedelta(minutes=30)

        for expected in range(1, 5):
            user = await users.register_failed_attempt("u1", 5, lock_until, clock())
            assert user.failed_attempts == expected
            assert user.locked_until is None

        user = await users.register_failed_attempt("u1", 5, lock_until, clock())
        assert user.failed_attempts == 5
        assert user.locked_until == lock_until
        assert await users.register_failed_attempt("missing", 5, lock_until, clock()) is None

    @pytest.mark.asyncio
    async def test_reset_failed_attempts(self, users, clock):
        await users.create(new_user(clock))
        for _ in range(5):
            await users.register_failed_attempt("u1", 5, clock() + timedelta(minutes=30), clock())

        clock.advance(minutes=31)
        await users.reset_failed_attempts("u1", clock())

        user = await users.get_by_id("u1")
        assert user.failed_attempts == 0
        assert user.locked_until is None
        assert user.last_login == clock()

    @pytest.mark.asyncio
    async def test_profile_password_and_activity_updates(self, users, clock):
        await users.create(new_user(clock))

        updated = await users.update_profile(
            "u1", {"first_name": "Grace", "phone": "+1 555 123 4567", "email": "ignored@x.com"}, clock()
        )
        assert updated.first_name == "Grace"
        assert updated.phone == "+1 555 123 4567"
        assert updated.email == "a@x.com"

        await users.update_password("u1", "new-hash", clock())
        await users.touch_activity("u1", clock())
        user = await users.get_by_id("u1")
        assert user.password_hash == "new-hash"
        assert user.last_active_date == clock()


class TestSQLSessionStore:
    @pytest.mark.asyncio
    async def test_cap_evicts_oldest(self, users, sessions, clock):
        await users.create(new_user(clock))
        created = []
        for n in range(6):
            created.append(await sessions.create(
                "u1", f"access-{n}", f"refresh-{n}", clock() + timedelta(days=7),
                SessionMetadata(client_ip="127.0.0.1", user_agent="pytest"),
            ))
            clock.advance(seconds=1)

        active = await sessions.list_active("u1")
        assert len(active) == 5
        assert [s.id for s in active] == [s.id for s in created[1:]]
        assert await sessions.get(created[0].id) is None

    @pytest.mark.asyncio
    async def test_lookup_rotate_and_invalidate(self, users, sessions, clock):
        await users.create(new_user(clock))
        session = await sessions.create("u1", "access", "refresh", clock() + timedelta(days=7))

        assert (await sessions.find_active_by_refresh_token("refresh")).id == session.id
        assert (await sessions.find_active_by_access_token("access")).id == session.id

        assert await sessions.rotate_access_token(session.id, "access-2")
        assert await sessions.find_active_by_access_token("access") is None
        assert (await sessions.find_active_by_access_token("access-2")).id == session.id

        assert await sessions.invalidate(session.id)
        assert not await sessions.invalidate(session.id)
        assert await sessions.find_active_by_refresh_token("refresh") is None
        assert (await sessions.get(session.id)).invalidated_at == clock()

    @pytest.mark.asyncio
    async def test_invalidate_all_and_sweep(self, users, sessions, clock):
        await users.create(new_user(clock))
        for n in range(3):
            await sessions.create("u1", f"a{n}", f"r{n}", clock() + timedelta(days=7))
        keep = await sessions.create("u1", "a-long", "r-long", clock() + timedelta(days=60))

        assert await sessions.invalidate_all("u1") == 4
        assert await sessions.list_active("u1") == []

        clock.advance(days=7)
        assert await sessions.sweep_expired() == 3
        assert await sessions.get(keep.id) is not None

        clock.advance(days=31)
        assert await sessions.sweep_expired() == 1


@pytest.mark.asyncio
async def test_sql_audit_log(database, clock):
    audit = AuditService(SQLAuditLog(database, timeout=5), clock=clock)

    await audit.log_auth_event(
        AuditAction.LOGIN_FAILED, "u1", SessionMetadata(client_ip="10.0.0.9"), success=False,
        details={"reason": "invalid_password"},
    )
    clock.advance(seconds=1)
    await audit.log_auth_event(AuditAction.LOGIN, "u1")

    entries = await audit.get_user_audit_logs("u1")
    assert [e.action for e in entries] == [AuditAction.LOGIN, AuditAction.LOGIN_FAILED]
    assert entries[1].result is AuditResult.FAILED
    assert entries[1].client_ip == "10.0.0.9"
    assert entries[1].details == {"reason": "invalid_password"}


class TestConcurrentWrites:
    @pytest.mark.asyncio
    async def test_simultaneous_wrong_passwords_all_count(self, file_database, clock):
        users = SQLUserStore(file_database, timeout=10)
        await users.create(new_user(clock))
        lock_until = clock() + timedelta(minutes=30)

        await asyncio.gather(*(
            users.register_failed_attempt("u1", 5, lock_until, clock()) for _ in range(5)
        ))

        user = await users.get_by_id("u1")
        assert user.failed_attempts == 5
        assert user.locked_until == lock_until

    @pytest.mark.asyncio
    async def test_simultaneous_logins_respect_session_cap(self, file_database, clock):
        users = SQLUserStore(file_database, timeout=10)
        sessions = SQLSessionStore(
            file_database, max_active_sessions=5, retention=timedelta(days=30), clock=clock, timeout=10
        )
        await users.create(new_user(clock))
        expires = clock() + timedelta(days=7)
        for n in range(4):
            await sessions.create("u1", f"access-{n}", f"refresh-{n}", expires)
            clock.advance(seconds=1)

        created = await asyncio.gather(*(
            sessions.create("u1", f"access-c{n}", f"refresh-c{n}", expires) for n in range(3)
        ))

        active = await sessions.list_active("u1")
        assert len(active) == 5
        assert {s.id for s in created} <= {s.id for s in active}
