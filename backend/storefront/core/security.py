"""
Bearer token verification for customer and admin identity.

Authentication itself is owned by the storefront's identity provider; this
service only verifies the signed JWT it receives and extracts the customer id
(``sub`` claim) and role. ``create_access_token`` exists for operational
tooling and tests.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import JWTError, jwt

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

ADMIN_ROLE = "admin"
CUSTOMER_ROLE = "customer"


class SecurityError(Exception):
    """Base exception for security-related errors."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context


class TokenError(SecurityError):
    """Raised when a bearer token is missing, malformed or expired."""

    pass


@dataclass(frozen=True)
class TokenIdentity:
    """Identity extracted from a verified bearer token."""

    customer_id: UUID
    role: str = CUSTOMER_ROLE
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def create_access_token(
    customer_id: UUID,
    role: str = CUSTOMER_ROLE,
    email: Optional[str] = None,
    expires_delta: timedelta = timedelta(minutes=60),
) -> str:
    """
    Create a signed access token.

    Args:
        customer_id: Subject of the token
        role: Role claim (customer or admin)
        email: Optional email claim
        expires_delta: Token lifetime

    Returns:
        Encoded JWT string
    """
    settings = get_settings()
    claims: Dict[str, Any] = {
        "sub": str(customer_id),
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenIdentity:
    """
    Verify a bearer token and return the identity it carries.

    Args:
        token: Encoded JWT

    Returns:
        TokenIdentity for the token subject

    Raises:
        TokenError: If the token is empty, invalid, expired or has no subject
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning(
            "Invalid bearer token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError("Invalid token", code="TOKEN_INVALID") from e

    subject = payload.get("sub")
    if not subject:
        raise TokenError("Token missing subject claim", code="TOKEN_NO_SUBJECT")

    try:
        customer_id = UUID(subject)
    except ValueError as e:
        raise TokenError(
            "Token subject is not a customer id",
            code="TOKEN_BAD_SUBJECT",
            subject=subject,
        ) from e

    return TokenIdentity(
        customer_id=customer_id,
        role=payload.get("role", CUSTOMER_ROLE),
        email=payload.get("email"),
    )
