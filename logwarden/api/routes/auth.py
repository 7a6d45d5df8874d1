# logwarden/api/routes/auth.py
"""
Signup, login and logout endpoints
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status

from ..schemas import SignupRequest, LoginRequest, AuthResponse, MessageResponse
from ..auth import authenticate_user, issue_session, get_bearer_token
from ...core.config import get_settings
from ...core.database import Database, get_db
from ...core.errors import AuthenticationError
from ...core.security import hash_password, hash_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(request: SignupRequest, database: Database = Depends(get_db)):
    """
    Create an account and log it in

    Returns a bearer token for the new user.
    """
    email = (request.email or "").strip()
    if not email or not request.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    min_length = get_settings().min_password_length
    if len(request.password) < min_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {min_length} characters long"
        )

    if database.get_user_by_email(email):
        raise HTTPException(status_code=409, detail="User with this email already exists")

    try:
        user = database.create_user(email, hash_password(request.password))
    except ValueError:
        # Lost a race with a concurrent signup
        raise HTTPException(status_code=409, detail="User with this email already exists")

    token, expires_at = issue_session(database, user)
    logger.info(f"New user registered: {user.id}")

    return AuthResponse(
        message="User created successfully",
        token=token,
        expires_at=expires_at,
        user=user.public_dict()
    )


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, database: Database = Depends(get_db)):
    """Exchange email + password for a bearer token"""
    email = (request.email or "").strip()
    if not email or not request.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    try:
        user = authenticate_user(database, email, request.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))

    database.update_last_login(user.id)
    user = database.get_user(user.id)
    token, expires_at = issue_session(database, user)

    return AuthResponse(
        message="Login successful",
        token=token,
        expires_at=expires_at,
        user=user.public_dict()
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(token: str = Depends(get_bearer_token), database: Database = Depends(get_db)):
    """Revoke the presented token"""
    database.delete_session(hash_token(token))
    return MessageResponse(message="Logged out")
