from typing import Optional

from fastapi import Depends, Request
from starlette.requests import HTTPConnection

from prothomuse.schemas import TokenClaims
from prothomuse.sessions import validate_token
from prothomuse.store import EventStore
from prothomuse.telemetry import TelemetryBuffer


def _authorization_credential(request: Request, scheme: str) -> Optional[str]:
    """
    Return the credential from "Authorization: <scheme> <credential>".

    Anything else (missing header, other scheme, extra parts) yields None.
    """
    header = request.headers.get("Authorization")
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) == 2 and parts[0] == scheme:
        return parts[1]
    return None


def get_bearer_token(request: Request) -> Optional[str]:
    return _authorization_credential(request, "Bearer")


def get_api_key(request: Request) -> Optional[str]:
    return _authorization_credential(request, "ApiKey")


def get_token_claims(token: Optional[str] = Depends(get_bearer_token)) -> TokenClaims:
    """
    Claims of the caller's bearer token.

    Raises MissingCredential, TokenInvalid or TokenExpired, all rendered as 401.
    """
    return validate_token(token)


def get_telemetry_buffer(connection: HTTPConnection) -> TelemetryBuffer:
    """The buffer created for this application in create_app."""
    return connection.app.state.telemetry_buffer


def get_event_store(connection: HTTPConnection) -> EventStore:
    return connection.app.state.event_store
