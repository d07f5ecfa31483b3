"""
Unit tests for AuthService against the in-memory stores.
"""
import pytest
from pydantic import ValidationError as PydanticValidationError

from cityguard.auth.models import AuditAction, AuditResult
from cityguard.core.exceptions import (
    AccountLocked,
    Conflict,
    InvalidCredentials,
    PermissionDenied,
    TokenInvalid,
    ValidationError,
)
from cityguard.schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    UserType,
)

from conftest import PASSWORD, registration


def actions(app):
    return [entry.action for entry in app.state.audit.log.entries]


def login(email="a@x.com", password=PASSWORD) -> LoginRequest:
    return LoginRequest(email=email, password=password)


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_builds_profile_and_tokens(self, app, service):
        user, tokens = await service.register(RegisterRequest(**registration(user_type="employee")))

        assert user.email == "a@x.com"
        assert user.user_type is UserType.EMPLOYEE
        assert user.profile["employeeId"].startswith("EMP")
        assert user.profile["badgeLevel"] == "NOVICE"
        assert user.password_hash != PASSWORD
        assert tokens.expires_in == 86400
        assert len(await app.state.sessions.list_active(user.id)) == 1
        assert actions(app) == [AuditAction.REGISTER]

    @pytest.mark.asyncio
    async def test_email_normalized(self, service):
        user, _ = await service.register(RegisterRequest(**registration(email="  Mixed@Example.COM ")))
        assert user.email == "mixed@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, service):
        await service.register(RegisterRequest(**registration()))
        with pytest.raises(Conflict):
            await service.register(RegisterRequest(**registration(email="A@x.com")))

    @pytest.mark.parametrize("field,value", [
        ("password", "short1A"),
        ("password", "alllowercase1"),
        ("password", "NoDigitsHere"),
        ("firstName", "A"),
        ("lastName", "O'Brien"),
        ("userType", "admin"),
        ("phone", "12345"),
        ("email", "not-an-email"),
    ])
    def test_invalid_registration_input(self, field, value):
        with pytest.raises(PydanticValidationError):
            RegisterRequest(**registration(**{field: value}))

    def test_valid_phone(self):
        data = RegisterRequest(**registration(phone="+1 (555) 123-4567"))
        assert data.phone == "+1 (555) 123-4567"


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_success(self, app, service, clock):
        await service.register(RegisterRequest(**registration()))
        user, tokens = await service.login(login())

        assert user.failed_attempts == 0
        assert user.last_login == clock()
        assert tokens.access_token and tokens.refresh_token
        assert actions(app)[-1] is AuditAction.LOGIN

    @pytest.mark.asyncio
    async def test_unknown_email_looks_like_wrong_password(self, app, service):
        await service.register(RegisterRequest(**registration()))

        with pytest.raises(InvalidCredentials) as unknown:
            await service.login(login(email="nobody@x.com"))
        with pytest.raises(InvalidCredentials) as wrong:
            await service.login(login(password="Wrong0ne1"))

        assert unknown.value.message == wrong.value.message == "Invalid email or password"
        failed = [e for e in app.state.audit.log.entries if e.action is AuditAction.LOGIN_FAILED]
        assert len(failed) == 2
        assert failed[0].user_id is None
        assert failed[0].details["email"] == "nobody@x.com"

    @pytest.mark.asyncio
    async def test_lockout_cycle(self, app, service, clock):
        await service.register(RegisterRequest(**registration()))

        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                await service.login(login(password="Wrong0ne1"))
        assert actions(app).count(AuditAction.ACCOUNT_LOCKED) == 1

        with pytest.raises(AccountLocked) as exc_info:
            await service.login(login())
        assert exc_info.value.remaining_minutes == 30

        clock.advance(minutes=30)
        user, _ = await service.login(login())
        assert user.failed_attempts == 0
        assert (await app.state.users.get_by_id(user.id)).failed_attempts == 0

    @pytest.mark.asyncio
    async def test_locked_attempt_is_audited_without_password_check(self, app, service):
        await service.register(RegisterRequest(**registration()))
        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                await service.login(login(password="Wrong0ne1"))

        with pytest.raises(AccountLocked):
            await service.login(login(password="Wrong0ne1"))

        user = await app.state.users.get_by_email("a@x.com")
        assert user.failed_attempts == 5
        last = app.state.audit.log.entries[-1]
        assert last.result is AuditResult.FAILED
        assert last.details == {"reason": "account_locked"}

    @pytest.mark.asyncio
    async def test_deactivated_account_login_is_audited(self, app, service):
        user, _ = await service.register(RegisterRequest(**registration()))
        app.state.users._users[user.id].is_active = False

        with pytest.raises(PermissionDenied):
            await service.login(login())

        last = app.state.audit.log.entries[-1]
        assert last.action is AuditAction.LOGIN_FAILED
        assert last.result is AuditResult.FAILED
        assert last.user_id == user.id
        assert last.details == {"reason": "account_inactive"}


class TestSessions:
    @pytest.mark.asyncio
    async def test_refresh_rotates_access_token(self, app, service):
        await service.register(RegisterRequest(**registration()))
        _, tokens = await service.login(login())

        refreshed = await service.refresh(tokens.refresh_token)
        assert refreshed.access_token != tokens.access_token
        assert refreshed.expires_in == 86400
        assert await app.state.sessions.find_active_by_access_token(refreshed.access_token) is not None
        assert actions(app)[-1] is AuditAction.TOKEN_REFRESH

    @pytest.mark.asyncio
    async def test_refresh_after_logout_fails(self, app, service):
        user, tokens = await service.register(RegisterRequest(**registration()))
        session = await app.state.sessions.find_active_by_refresh_token(tokens.refresh_token)
        await service.logout(user.id, session.id)

        with pytest.raises(TokenInvalid):
            await service.refresh(tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_refresh_after_expiry_fails(self, service, clock):
        _, tokens = await service.register(RegisterRequest(**registration()))
        clock.advance(days=7)

        with pytest.raises(TokenInvalid):
            await service.refresh(tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_session_cap(self, app, service, clock):
        user, first = await service.register(RegisterRequest(**registration()))
        for _ in range(5):
            clock.advance(seconds=1)
            await service.login(login())

        assert len(await app.state.sessions.list_active(user.id)) == 5
        with pytest.raises(TokenInvalid):
            await service.refresh(first.refresh_token)

    @pytest.mark.asyncio
    async def test_list_and_revoke_sessions(self, app, service, clock):
        user, tokens = await service.register(RegisterRequest(**registration()))
        clock.advance(seconds=1)
        await service.login(login())
        current = await app.state.sessions.find_active_by_access_token(tokens.access_token)

        listed = await service.list_sessions(user.id, current.id)
        assert len(listed) == 2
        assert [s.is_current for s in listed].count(True) == 1

        other = next(s for s in listed if not s.is_current)
        await service.revoke_session(user.id, other.id)
        assert len(await service.list_sessions(user.id)) == 1

        with pytest.raises(ValidationError):
            await service.revoke_session(user.id, other.id)
        with pytest.raises(ValidationError):
            await service.revoke_session("someone-else", current.id)

    @pytest.mark.asyncio
    async def test_logout_all(self, app, service):
        user, _ = await service.register(RegisterRequest(**registration()))
        await service.login(login())

        assert await service.logout_all(user.id) == 2
        assert await app.state.sessions.list_active(user.id) == []


class TestProfile:
    @pytest.mark.asyncio
    async def test_update_profile(self, app, service):
        user, _ = await service.register(RegisterRequest(**registration()))

        updated = await service.update_profile(user.id, ProfileUpdateRequest(firstName="Grace"))
        assert updated.first_name == "Grace"
        assert updated.last_name == "Lovelace"
        assert actions(app)[-1] is AuditAction.PROFILE_UPDATE

        with pytest.raises(ValidationError):
            await service.update_profile(user.id, ProfileUpdateRequest())

    @pytest.mark.asyncio
    async def test_change_password_ends_sessions(self, app, service):
        user, _ = await service.register(RegisterRequest(**registration()))

        with pytest.raises(InvalidCredentials):
            await service.change_password(
                user.id, ChangePasswordRequest(currentPassword="Wrong0ne1", newPassword="N3wPassword")
            )

        await service.change_password(
            user.id, ChangePasswordRequest(currentPassword=PASSWORD, newPassword="N3wPassword")
        )
        assert await app.state.sessions.list_active(user.id) == []
        with pytest.raises(InvalidCredentials):
            await service.login(login())
        await service.login(login(password="N3wPassword"))
