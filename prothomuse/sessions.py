"""
Registration, login and profile workflows.

Each function takes the request-scoped SQLAlchemy session and returns ORM
rows or schema objects; turning them into HTTP responses is the routers' job.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from prothomuse.auth import (
    generate_api_key,
    hash_password,
    issue_token,
    password_needs_rehash,
    verify_password,
    verify_token,
)
from prothomuse.errors import (
    AccountInactive,
    ConflictError,
    InvalidCredential,
    MissingCredential,
    NotFound,
    UnknownAPIKey,
    ValidationError,
)
from prothomuse.models import Account
from prothomuse.schemas import (
    AccountUpdate,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    TokenClaims,
)
from prothomuse.store import AccountStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _check_email(email: Optional[str]) -> None:
    if not email or "@" not in email:
        raise ValidationError("Invalid email address")


def _check_password(password: Optional[str]) -> None:
    if not password:
        raise ValidationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def _check_username(username: Optional[str]) -> None:
    if not username or not username.strip():
        raise ValidationError("Username is required")


def validate_registration(request: RegisterRequest) -> None:
    _check_email(request.email)
    _check_password(request.password)
    _check_username(request.username)


def register(db: Session, request: RegisterRequest) -> Account:
    """
    Create a new active account with a freshly generated API key.

    Raises ValidationError for bad input and ConflictError when the email is
    taken (either found up front or rejected by the unique constraint).
    """
    validate_registration(request)

    store = AccountStore(db)
    if store.get_by_email(request.email) is not None:
        raise ConflictError("User with this email already exists")

    account = store.create(
        username=request.username.strip(),
        email=request.email,
        password_hash=hash_password(request.password),
        api_key=generate_api_key(),
        is_active=True,
    )
    logger.info("Registered account %s", account.id)
    return account


def login(db: Session, request: LoginRequest) -> LoginResponse:
    """
    Check credentials and issue a bearer token.

    Raises NotFound for an unknown email, AccountInactive for a disabled
    account and InvalidCredential for a wrong password.
    """
    store = AccountStore(db)
    account = store.get_by_email(request.email)
    if account is None:
        raise NotFound("User not found")
    if not account.is_active:
        raise AccountInactive()
    if not verify_password(request.password, account.password_hash):
        raise InvalidCredential("Invalid email or password")

    if password_needs_rehash(account.password_hash):
        store.update(account.id, password_hash=hash_password(request.password))
        logger.info("Upgraded password hash parameters for account %s", account.id)

    token = issue_token(account.id, account.email)
    return LoginResponse(
        id=account.id,
        token=token,
        api_key=account.api_key,
        username=account.username,
    )


def update_profile(db: Session, account_id: int, update: AccountUpdate) -> Account:
    """
    Apply a sparse update to the account identified by account_id.

    account_id must come from a verified token, never from the request body.
    Only fields present in ``update`` are written. Present values must be
    usable: empty strings and nulls are rejected instead of being read as
    "not provided".
    """
    changes = update.changes()

    store = AccountStore(db)
    account = store.get_by_id(account_id)
    if account is None:
        raise NotFound("User not found")

    columns = {}

    if "username" in changes:
        _check_username(changes["username"])
        columns["username"] = changes["username"].strip()

    if "email" in changes:
        email = (changes["email"] or "").strip().lower()
        _check_email(email)
        if email != account.email:
            other = store.get_by_email(email)
            if other is not None and other.id != account.id:
                raise ConflictError("Another user with this email already exists")
            columns["email"] = email

    if "password" in changes:
        _check_password(changes["password"])
        columns["password_hash"] = hash_password(changes["password"])

    if "api_key" in changes:
        api_key = changes["api_key"]
        if not api_key or not api_key.strip():
            raise ValidationError("API key cannot be empty")
        if api_key != account.api_key:
            other = store.get_by_api_key(api_key)
            if other is not None and other.id != account.id:
                raise ConflictError("API key already in use")
            columns["api_key"] = api_key

    if "is_active" in changes:
        if changes["is_active"] is None:
            raise ValidationError("isActive cannot be null")
        columns["is_active"] = changes["is_active"]

    updated = store.update(account.id, **columns)
    logger.info("Updated account %s fields: %s", account.id, sorted(columns) or "none")
    return updated


def validate_api_key(db: Session, api_key: Optional[str]) -> Account:
    if not api_key:
        raise MissingCredential("API key is required")
    account = AccountStore(db).get_by_api_key(api_key)
    if account is None:
        raise UnknownAPIKey()
    if not account.is_active:
        raise AccountInactive()
    return account


def validate_token(token: Optional[str]) -> TokenClaims:
    if not token:
        raise MissingCredential("JWT token is required")
    return verify_token(token)
