"""
Unit tests for request authentication and role/zone guards.
"""
from datetime import timedelta

import pytest
from fastapi import BackgroundTasks
from starlette.requests import Request

from cityguard.auth.middleware import (
    Principal,
    check_zone_access,
    extract_token,
    get_optional_principal,
    resolve_target_zone,
)
from cityguard.core.exceptions import AccountLocked, PermissionDenied, TokenInvalid
from cityguard.schemas.token import CitizenClaims, EmployeeClaims, EnvironmentalClaims, OfficeClaims
from cityguard.schemas.user import LoginRequest, RegisterRequest, UserType

from conftest import PASSWORD, registration


def build_request(headers=None, query=b"", path_params=None, body=b"") -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "query_string": query,
        "path_params": path_params or {},
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def employee(zone="East") -> EmployeeClaims:
    return EmployeeClaims(
        user_id="e1", email="e@x.com", first_name="E", last_name="One", employee_id="EMP1", zone=zone
    )


def office(zones) -> OfficeClaims:
    return OfficeClaims(
        user_id="o1", email="o@x.com", first_name="O", last_name="One", manager_id="MGR1", managed_zones=zones
    )


class TestExtractToken:
    def test_bearer_header_wins(self):
        request = build_request(
            headers={"Authorization": "Bearer header-token", "Cookie": "accessToken=cookie-token"},
            query=b"token=query-token",
        )
        assert extract_token(request) == "header-token"

    def test_query_param_before_cookie(self):
        request = build_request(headers={"Cookie": "accessToken=cookie-token"}, query=b"token=query-token")
        assert extract_token(request) == "query-token"

    def test_cookie(self):
        assert extract_token(build_request(headers={"Cookie": "accessToken=cookie-token"})) == "cookie-token"

    def test_non_bearer_scheme_ignored(self):
        assert extract_token(build_request(headers={"Authorization": "Basic abc"})) is None


class TestZoneResolution:
    @pytest.mark.asyncio
    async def test_path_then_query_then_body(self):
        request = build_request(path_params={"zone": "North"}, query=b"zone=South")
        assert await resolve_target_zone(request, "zone") == "North"

        request = build_request(query=b"zone=South")
        assert await resolve_target_zone(request, "zone") == "South"

        request = build_request(headers={"Content-Type": "application/json"}, body=b'{"zone": "West"}')
        assert await resolve_target_zone(request, "zone") == "West"

    @pytest.mark.asyncio
    async def test_missing_zone(self):
        assert await resolve_target_zone(build_request(), "zone") is None
        request = build_request(headers={"Content-Type": "application/json"}, body=b"{not json")
        assert await resolve_target_zone(request, "zone") is None


class TestZoneAccess:
    def test_employee_limited_to_own_zone(self):
        check_zone_access(employee("East"), "East")
        with pytest.raises(PermissionDenied):
            check_zone_access(employee("East"), "West")

    def test_office_limited_to_managed_zones(self):
        check_zone_access(office(["East", "West"]), "East")
        check_zone_access(office(["East", "West"]), "West")
        with pytest.raises(PermissionDenied):
            check_zone_access(office(["East", "West"]), "North")

    def test_other_types_pass(self):
        citizen = CitizenClaims(user_id="c", email="c@x.com", first_name="C", last_name="C", citizen_id="CIT1")
        sensor = EnvironmentalClaims(user_id="s", email="s@x.com", first_name="S", last_name="S", sensor_id="ENV1")
        check_zone_access(citizen, "Anywhere")
        check_zone_access(sensor, "Anywhere")


def test_principal_exposes_identity():
    principal = Principal(claims=employee(), session_id="s1")
    assert principal.id == "e1"
    assert principal.email == "e@x.com"
    assert principal.user_type is UserType.EMPLOYEE


class TestAuthenticator:
    @pytest.mark.asyncio
    async def test_authenticates_active_session(self, app, service):
        _, tokens = await service.register(RegisterRequest(**registration()))

        principal = await app.state.authenticator.authenticate(tokens.access_token)
        assert principal.email == "a@x.com"
        assert isinstance(principal.claims, CitizenClaims)

    @pytest.mark.asyncio
    async def test_rejects_token_of_ended_session(self, app, service):
        user, tokens = await service.register(RegisterRequest(**registration()))
        principal = await app.state.authenticator.authenticate(tokens.access_token)
        await service.logout(user.id, principal.session_id)

        with pytest.raises(TokenInvalid) as exc_info:
            await app.state.authenticator.authenticate(tokens.access_token)
        assert exc_info.value.reason == "SESSION_INACTIVE"

    @pytest.mark.asyncio
    async def test_rejects_deactivated_user(self, app, service):
        user, tokens = await service.register(RegisterRequest(**registration()))
        app.state.users._users[user.id].is_active = False

        with pytest.raises(PermissionDenied):
            await app.state.authenticator.authenticate(tokens.access_token)

    @pytest.mark.asyncio
    async def test_rejects_locked_user(self, app, service, clock):
        user, tokens = await service.register(RegisterRequest(**registration()))
        app.state.users._users[user.id].locked_until = clock() + timedelta(minutes=10)

        with pytest.raises(AccountLocked):
            await app.state.authenticator.authenticate(tokens.access_token)

    @pytest.mark.asyncio
    async def test_email_verification_requirement(self, app, service):
        _, tokens = await service.register(RegisterRequest(**registration()))
        app.state.authenticator.require_email_verification = True

        with pytest.raises(PermissionDenied):
            await app.state.authenticator.authenticate(tokens.access_token)

    @pytest.mark.asyncio
    async def test_record_activity(self, app, service, clock):
        user, _ = await service.register(RegisterRequest(**registration()))
        _, tokens = await service.login(LoginRequest(email="a@x.com", password=PASSWORD))
        principal = await app.state.authenticator.authenticate(tokens.access_token)

        clock.advance(minutes=2)
        await app.state.authenticator.record_activity(principal)

        assert (await app.state.sessions.get(principal.session_id)).last_activity == clock()
        assert (await app.state.users.get_by_id(user.id)).last_active_date == clock()


class TestOptionalPrincipal:
    @pytest.mark.asyncio
    async def test_missing_token_yields_none(self, app):
        request = build_request()
        request.scope["app"] = app
        assert await get_optional_principal(request, BackgroundTasks()) is None

    @pytest.mark.asyncio
    async def test_bad_token_yields_none(self, app):
        request = build_request(headers={"Authorization": "Bearer nonsense"})
        request.scope["app"] = app
        assert await get_optional_principal(request, BackgroundTasks()) is None

    @pytest.mark.asyncio
    async def test_valid_token_yields_principal(self, app, service):
        user, tokens = await service.register(RegisterRequest(**registration()))
        request = build_request(headers={"Authorization": f"Bearer {tokens.access_token}"})
        request.scope["app"] = app
        tasks = BackgroundTasks()

        principal = await get_optional_principal(request, tasks)
        assert principal.id == user.id
        assert request.state.principal is principal
        assert len(tasks.tasks) == 1
