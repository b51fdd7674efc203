"""
Authentication

Account registration, login and bearer-token verification. Tokens are HS256
JWTs whose `sub` claim is the principal (profile id).
"""
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.schemas import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from config import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_TTL_MINUTES
from models.errors import AuthenticationError
from services.profile_store import ProfileStoreError, get_profile_store

logger = logging.getLogger(__name__)

router = APIRouter()
bearer_scheme = HTTPBearer(auto_error=False)

PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: str = None) -> str:
    """PBKDF2-SHA256 hash as `salt$hexdigest`"""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, _, expected = password_hash.partition("$")
    if not expected:
        return False
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def create_access_token(principal: str, ttl_minutes: int = None) -> str:
    """Issue a signed bearer token for a principal"""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": principal,
        "iat": now,
        "exp": now + timedelta(minutes=ttl_minutes or ACCESS_TOKEN_TTL_MINUTES),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> str:
    """
    Resolve a bearer token to its principal.

    Raises:
        AuthenticationError: If the token is expired, malformed or has no subject
    """
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Authentication token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid authentication token")

    principal = claims.get("sub")
    if not principal:
        raise AuthenticationError("Invalid authentication token")
    return principal


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    """FastAPI dependency: principal of the request's bearer token"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized")
    return decode_access_token(credentials.credentials)


@router.post("/auth/register", response_model=RegisterResponse)
async def register(req: RegisterRequest, profile_store=Depends(get_profile_store)):
    """
    Register a new user account.
    The returned id is the principal used for uploads and attendance.
    """
    email = req.email.strip().lower()
    try:
        if await profile_store.get_profile_by_email(email):
            raise HTTPException(status_code=400, detail="Email already registered")

        profile = await profile_store.create_profile(
            email=email,
            password_hash=hash_password(req.password),
            full_name=req.full_name,
            roll_number=req.roll_number
        )
    except ProfileStoreError as e:
        logger.error(f"Registration failed for {email}: {e}")
        raise HTTPException(status_code=400, detail="Could not create account (duplicate roll number?)")

    logger.info(f"Registered profile {profile.id}")
    return RegisterResponse(
        success=True,
        message="Registration successful",
        user=profile.to_dict()
    )


@router.post("/auth/login", response_model=LoginResponse)
async def login(req: LoginRequest, profile_store=Depends(get_profile_store)):
    """
    Login with email/password, returns a bearer token
    """
    profile = await profile_store.get_profile_by_email(req.email.strip().lower())

    if not profile or not verify_password(req.password, profile.password_hash or ""):
        raise AuthenticationError("Invalid email or password")

    return LoginResponse(
        success=True,
        message="Login successful",
        access_token=create_access_token(profile.id),
        user_id=profile.id,
        full_name=profile.full_name
    )
