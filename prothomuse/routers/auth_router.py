import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from prothomuse import sessions
from prothomuse.database import get_db
from prothomuse.dependencies import get_api_key, get_token_claims
from prothomuse.errors import InvalidCredential, NotFound
from prothomuse.responses import success_response
from prothomuse.schemas import (
    AccountResponse,
    AccountSummary,
    AccountUpdate,
    LoginRequest,
    RegisterRequest,
    TokenClaims,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Create new account.

    Error cases:
    - 400: Validation failed
    - 409: Email already exists
    """
    account = sessions.register(db, request)
    return success_response(
        "user registered successfully", AccountResponse.from_account(account)
    )


@router.post("/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate with email and password and receive a bearer token.

    Unknown email and wrong password produce the same 401 so the endpoint
    does not reveal which emails are registered.
    """
    try:
        result = sessions.login(db, request)
    except NotFound as exc:
        raise InvalidCredential("Invalid email or password") from exc
    return success_response("user logged in successfully", result)


@router.api_route("/update", methods=["PUT", "PATCH"])
def update_account(
    update: AccountUpdate,
    claims: TokenClaims = Depends(get_token_claims),
    db: Session = Depends(get_db),
):
    """
    Update the caller's own profile. Requires Authorization: Bearer <token>.

    The account id always comes from the token; an id in the body is ignored.
    """
    account = sessions.update_profile(db, claims.account_id, update)
    return success_response(
        "user updated successfully", AccountSummary.from_account(account)
    )


@router.get("/validate-apikey")
def validate_api_key(
    api_key: Optional[str] = Depends(get_api_key),
    db: Session = Depends(get_db),
):
    """Check an Authorization: ApiKey <key> header."""
    account = sessions.validate_api_key(db, api_key)
    return success_response("API key is valid", AccountSummary.from_account(account))


@router.get("/validate-jwt")
def validate_jwt(claims: TokenClaims = Depends(get_token_claims)):
    """Check an Authorization: Bearer <token> header and echo its claims."""
    return success_response("JWT token is valid", claims)
