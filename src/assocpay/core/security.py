# src/assocpay/core/security.py

from datetime import datetime, timedelta
from typing import Any, Optional, Union
import hmac
from jose import jwt, JWTError

from assocpay.core.config import settings

# ------------------------------------------------------------------------------
# 1. JSON Web Token (JWT) Management
#    - Tokens are issued by the identity service; this service only verifies them.
# ------------------------------------------------------------------------------

def create_access_token(subject: Union[str, Any], expires_delta: timedelta = None) -> str:
    """
    Creates a new JWT access token.

    :param subject: The user UUID, encoded in the 'sub' claim.
    :param expires_delta: Optional timedelta for token expiration. If None, uses default from settings.
    :return: The encoded JWT string.
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "exp": expire,
        "sub": str(subject)
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decodes and verifies a JWT access token.

    :raises JWTError: for expired or tampered tokens; the caller maps it to a 401.
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise

# ------------------------------------------------------------------------------
# 2. Administrative API key
# ------------------------------------------------------------------------------

def verify_admin_api_key(candidate: Optional[str]) -> bool:
    """Compares a presented key with the configured admin key in constant time."""
    if not candidate or not settings.ADMIN_API_KEY:
        return False
    return hmac.compare_digest(candidate.encode(), settings.ADMIN_API_KEY.encode())
