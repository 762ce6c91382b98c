"""
Token and secret helpers shared by the session API and the key/secret API
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
import bcrypt

from .config import settings


def hash_secret(secret: str) -> str:
    """Hash an API secret using bcrypt"""
    return bcrypt.hashpw(secret.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_secret(plain_secret: str, hashed_secret: str) -> bool:
    """Verify an API secret against its bcrypt hash"""
    try:
        return bcrypt.checkpw(
            plain_secret.encode('utf-8'),
            hashed_secret.encode('utf-8')
        )
    except ValueError:
        # Malformed hash stored for the key
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode a JWT access token, returns None if invalid or expired"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
