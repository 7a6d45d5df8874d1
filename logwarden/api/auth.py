# logwarden/api/auth.py
"""
Authentication for the API
Bearer tokens issued at login/signup, stored server-side as SHA-256 digests
"""

from datetime import datetime
from typing import Optional, Tuple
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..core.database import Database, get_db
from ..core.errors import AuthenticationError
from ..core.models import User
from ..core.security import generate_token, hash_token, verify_password

# auto_error=False so a missing header gets our own 401 message
BEARER_SCHEME = HTTPBearer(auto_error=False)


def authenticate_user(database: Database, email: str, password: str) -> User:
    """
    Check login credentials

    Raises:
        AuthenticationError: Unknown or inactive email, or wrong password
    """
    user = database.get_user_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    return user


def issue_session(database: Database, user: User) -> Tuple[str, datetime]:
    """
    Create a session for a user

    Returns:
        (plaintext token, expiry). The token is only ever shown here.
    """
    token = generate_token()
    expires_at = database.create_session(user.id, hash_token(token))
    return token, expires_at


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(BEARER_SCHEME)
) -> str:
    """
    Dependency extracting the bearer token

    Raises:
        HTTPException: 401 if the Authorization header is missing or malformed
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing or malformed",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    database: Database = Depends(get_db)
) -> User:
    """
    Dependency resolving the bearer token to a user

    Raises:
        HTTPException: 403 if the token is unknown, revoked or expired
    """
    user = database.get_session_user(hash_token(token))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired token"
        )
    return user
