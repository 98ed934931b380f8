import base64
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from argon2 import PasswordHasher
from argon2 import exceptions as argon2_exceptions
from jose import ExpiredSignatureError, JWTError, jwt

from prothomuse.config import get_settings
from prothomuse.errors import (
    EntropyError,
    HashingError,
    TokenExpired,
    TokenInvalid,
    TokenSigningError,
)
from prothomuse.schemas import TokenClaims

logger = logging.getLogger(__name__)

settings = get_settings()

# Argon2id with library defaults. Parameters are embedded in each hash so
# they can be raised later; password_needs_rehash reports stale hashes.
ph = PasswordHasher()

API_KEY_RANDOM_BYTES = 32
API_KEY_BODY_LENGTH = 40


def hash_password(password: str) -> str:
    """
    Hash password using Argon2id.

    Returns hash string that includes algorithm parameters and salt.
    Format: $argon2id$v=19$m=65536,t=3,p=4$salt$hash
    """
    try:
        return ph.hash(password)
    except argon2_exceptions.HashingError as exc:
        logger.error("Password hashing failed: %s", exc)
        raise HashingError() from exc


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored hash.

    Uses constant-time comparison internally. A wrong password returns False;
    a stored hash that is not a valid argon2 hash raises HashingError since
    that points at corrupted data rather than a bad login.
    """
    try:
        return ph.verify(password_hash, password)
    except argon2_exceptions.InvalidHashError as exc:
        raise HashingError("Stored password hash is malformed") from exc
    except argon2_exceptions.VerificationError:
        # VerifyMismatchError is a subclass
        return False


def password_needs_rehash(password_hash: str) -> bool:
    return ph.check_needs_rehash(password_hash)


def generate_api_key() -> str:
    """
    Generate a long-lived API key.

    32 random bytes, URL-safe base64 encoded and cut to 40 characters, behind
    the configured prefix (pk_ by default), so keys never look like a JWT.
    """
    try:
        raw = secrets.token_bytes(API_KEY_RANDOM_BYTES)
    except (OSError, NotImplementedError) as exc:
        logger.error("Randomness source failed while generating API key: %s", exc)
        raise EntropyError() from exc
    body = base64.urlsafe_b64encode(raw).decode("ascii")[:API_KEY_BODY_LENGTH]
    return f"{settings.api_key_prefix}{body}"


def issue_token(account_id: int, email: str, issued_at: Optional[datetime] = None) -> str:
    """
    Sign a bearer token for a logged-in account.

    Tokens are stateless: validity is the signature plus the expiry claim.
    """
    if not settings.jwt_secret_key:
        raise TokenSigningError()

    issued_at = issued_at or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=settings.token_expire_hours)
    claims = {
        "sub": str(account_id),
        "userId": account_id,
        "email": email,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    try:
        return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    except JWTError as exc:
        raise TokenSigningError(f"Could not sign token: {exc}") from exc


def verify_token(token: str) -> TokenClaims:
    """
    Decode and check a bearer token.

    Raises TokenExpired when the signature is good but exp has passed, and
    TokenInvalid for everything else (bad signature, garbage, missing claims).
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        logger.debug("Rejected token: %s", exc)
        raise TokenInvalid() from exc

    try:
        return TokenClaims(
            account_id=payload["userId"],
            email=payload["email"],
            issued_at=payload["iat"],
            expires_at=payload["exp"],
        )
    except (KeyError, ValueError) as exc:
        raise TokenInvalid("Token is missing required claims") from exc
