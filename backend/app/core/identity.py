"""
Caller identity.

Bearer tokens are issued by the identity provider and signed with the
shared secret (python-jose). The shipment core only needs who is calling
and in which role, as a plain dict:

    {"user_id": 123, "sub": "jane", "role": "customer"}
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Union
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from backend.app.core.config import settings
from backend.app.core.exceptions import AuthenticationError
from backend.app.models.enums import UserRole

# HTTP Bearer security scheme; a missing header is reported by get_current_user
security = HTTPBearer(auto_error=False)


def issue_token(
    user_id: int,
    role: Union[UserRole, str],
    subject: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a token the way the identity provider does.
    
    Used by tests and local tooling; production callers bring their own.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims = {
        "sub": subject or f"user-{user_id}",
        "user_id": user_id,
        "role": role.value if isinstance(role, UserRole) else role,
        "exp": expire,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def read_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified claims, or None for a bad signature, expiry or malformed token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def identity_from_claims(claims: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reduce token claims to the caller identity.
    
    Raises:
        AuthenticationError: user_id missing or role unknown
    """
    user_id = claims.get("user_id")
    if not isinstance(user_id, int) or user_id <= 0:
        raise AuthenticationError("Invalid token payload")
    try:
        role = UserRole(claims.get("role"))
    except ValueError:
        raise AuthenticationError("Invalid role in token")
    return {"user_id": user_id, "sub": claims.get("sub"), "role": role.value}


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    FastAPI dependency resolving the caller identity.
    
    Raises:
        AuthenticationError: 401 when the token is missing, invalid or incomplete
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    
    claims = read_token(credentials.credentials)
    if claims is None:
        raise AuthenticationError("Could not validate credentials")
    
    return identity_from_claims(claims)
