from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Wire models use camelCase keys (the format instrumented clients and the
    dashboard speak) while Python code uses snake_case attribute names.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    """
    Registration payload.

    Only shape is checked here. The business rules (email contains "@",
    password of at least 6 characters, non-empty username) are enforced by
    prothomuse.sessions.register so they hold for every caller.
    """
    username: str
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        # Prevents duplicate accounts that differ only in casing
        return v.strip().lower()


class LoginRequest(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class LoginResponse(CamelModel):
    id: int
    token: str
    api_key: str
    username: str


class AccountUpdate(CamelModel):
    """
    Sparse update descriptor.

    A field is "present" when the client sent it, including an explicit
    null. Absent fields are left untouched. Present values are validated by
    the session core; empty strings and nulls are rejected rather than being
    treated as "not provided".
    """
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    is_active: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly supplied by the caller, keyed by attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class AccountResponse(CamelModel):
    """
    Safe account representation returned after registration.

    Critical: never include password_hash in any response.
    """
    id: int
    username: str
    email: str
    api_key: str
    is_active: bool

    @classmethod
    def from_account(cls, account) -> "AccountResponse":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            api_key=account.api_key,
            is_active=account.is_active,
        )


class AccountSummary(CamelModel):
    """Account fields echoed by update and API key validation."""
    id: int
    username: str
    email: str
    is_active: bool

    @classmethod
    def from_account(cls, account) -> "AccountSummary":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            is_active=account.is_active,
        )


class TokenClaims(CamelModel):
    """Decoded bearer token. Timestamps are epoch seconds."""
    account_id: int
    email: str
    issued_at: int
    expires_at: int


# Numeric frame fields are signed 64-bit integers on the wire and in the
# events table
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class TelemetryRecord(BaseModel):
    """
    One decoded inbound frame, before the durable store assigns an id.

    Only the camelCase keys are accepted, and numbers must be JSON integers:
    "200" is not a status code. timestamp is the client clock in epoch
    milliseconds and is not trusted for ordering.
    """
    model_config = ConfigDict(alias_generator=to_camel, strict=True)

    project_id: str = Field(min_length=1)
    route: str
    method: str
    status_code: int = Field(ge=INT64_MIN, le=INT64_MAX)
    response_time: int = Field(ge=INT64_MIN, le=INT64_MAX)
    timestamp: int = Field(ge=INT64_MIN, le=INT64_MAX)


class EventResponse(CamelModel):
    id: int
    project_id: str
    route: str
    method: str
    status_code: int
    response_time: int
    timestamp: int
    persisted_at: Optional[datetime] = None

    @classmethod
    def from_event(cls, event) -> "EventResponse":
        return cls(
            id=event.id,
            project_id=event.project_id,
            route=event.route,
            method=event.method,
            status_code=event.status_code,
            response_time=event.response_time,
            timestamp=event.client_timestamp,
            persisted_at=event.persisted_at,
        )


class Acknowledgement(BaseModel):
    """Frame sent back to the client for every decoded event."""
    status: str = "received"
    message: str
