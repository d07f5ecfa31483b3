"""
Token claim and token response models.

Access token claims are a tagged union keyed by ``userType``; every account
type has its own fixed set of claims.
"""
from typing import Annotated, Any, List, Literal, Union

from pydantic import ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .user import CamelModel, UserType


class BaseClaims(CamelModel):
    # Registered claims (iat, exp, jti, ...) are validated by the token service
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    user_id: str
    email: str
    first_name: str
    last_name: str


class CitizenClaims(BaseClaims):
    user_type: Literal["citizen"] = "citizen"
    citizen_id: str
    level: int = 1


class EmployeeClaims(BaseClaims):
    user_type: Literal["employee"] = "employee"
    employee_id: str
    zone: str = ""
    department: str = ""


class OfficeClaims(BaseClaims):
    user_type: Literal["office"] = "office"
    manager_id: str
    managed_zones: List[str] = Field(default_factory=list)


class EnvironmentalClaims(BaseClaims):
    user_type: Literal["environmental"] = "environmental"
    sensor_id: str
    monitored_zones: List[str] = Field(default_factory=list)


AccessClaims = Annotated[
    Union[CitizenClaims, EmployeeClaims, OfficeClaims, EnvironmentalClaims],
    Field(discriminator="user_type"),
]

access_claims_adapter: TypeAdapter = TypeAdapter(AccessClaims)


class RefreshClaims(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    user_id: str
    user_type: UserType
    token_type: Literal["refresh"]


def claims_for_user(user: Any) -> Union[CitizenClaims, EmployeeClaims, OfficeClaims, EnvironmentalClaims]:
    """Build the access claims variant for a user record."""
    profile = user.profile or {}
    base = dict(
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
    )
    user_type = UserType(user.user_type)

    if user_type is UserType.CITIZEN:
        return CitizenClaims(
            citizen_id=profile.get("citizenId", ""),
            level=profile.get("level", 1),
            **base,
        )
    if user_type is UserType.EMPLOYEE:
        return EmployeeClaims(
            employee_id=profile.get("employeeId", ""),
            zone=profile.get("zone", ""),
            department=profile.get("department", ""),
            **base,
        )
    if user_type is UserType.OFFICE:
        return OfficeClaims(
            manager_id=profile.get("managerId", ""),
            managed_zones=list(profile.get("managedZones", [])),
            **base,
        )
    return EnvironmentalClaims(
        sensor_id=profile.get("sensorId", ""),
        monitored_zones=list(profile.get("monitoredZones", [])),
        **base,
    )


class TokenPair(CamelModel):
    """Token pair returned by register and login."""
    access_token: str
    refresh_token: str
    expires_in: int


class AccessTokenResponse(CamelModel):
    """Tokens returned by refresh: a new access token only."""
    access_token: str
    expires_in: int


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)
