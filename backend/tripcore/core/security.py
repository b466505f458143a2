"""
Security utilities for JWT authentication.

Identity is issued by an external provider. This service only verifies the
bearer credential and extracts the opaque member id from the ``sub`` claim.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from tripcore.core.config import settings
from tripcore.core.exceptions import AuthError


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        return None


def resolve_caller(token: Optional[str]) -> str:
    """
    Resolve a bearer credential to a member id.

    Raises AuthError when the token is missing, invalid, expired, or has no
    subject.
    """
    if not token:
        raise AuthError("Missing token")
    payload = decode_access_token(token)
    if payload is None:
        raise AuthError("Invalid token")
    member_id = payload.get("sub")
    if not member_id:
        raise AuthError("Could not retrieve member id from token")
    return str(member_id)
