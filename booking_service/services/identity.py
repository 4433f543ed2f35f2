"""
Customer identity.

Bearer tokens are signed JWTs issued by the login provider; the `email`
claim is the customer's identity. `validate_user` mirrors the provider
contract: it never raises and returns (metadata, error).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from ..models.booking_record import BookingRecord
from ..errors import AuthorizationMismatch

logger = logging.getLogger(__name__)


@dataclass
class UserValidation:
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class IdentityService:
    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def validate_user(self, token: Optional[str]) -> UserValidation:
        if not token:
            return UserValidation(error="Missing token")
        if not self.secret_key:
            logger.error("IDENTITY_SECRET_KEY is not configured, rejecting token")
            return UserValidation(error="Identity validation is not configured")

        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info(f"Token validation failed: {e}")
            return UserValidation(error=str(e))

        email = claims.get("email")
        if not email:
            return UserValidation(error="Token has no email claim")

        metadata = {
            "email": email,
            "issuer": claims.get("iss"),
            "subject": claims.get("sub"),
        }
        return UserValidation(metadata=metadata)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def ensure_owner(metadata: Dict[str, Any], record: BookingRecord) -> None:
    """Raise AuthorizationMismatch unless the identity owns the record."""
    if (metadata or {}).get("email") != record.email:
        raise AuthorizationMismatch()
