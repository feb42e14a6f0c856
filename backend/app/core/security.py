import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from app.core.config import settings

# Bcrypt limit is 72 bytes; truncate to avoid errors
BCRYPT_MAX_PASSWORD_BYTES = 72

SESSION_TOKEN_TYPE = "device_session"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    pwd_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]
    return bcrypt.checkpw(pwd_bytes, hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    pwd_bytes = password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(pwd_bytes, salt).decode("utf-8")


def create_access_token(
    subject: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[dict] = None,
    expires_at: Optional[datetime] = None,
) -> str:
    if expires_at is not None:
        expire = expires_at
    elif expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": subject, "exp": expire}
    if extra_claims:
        to_encode.update(extra_claims)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm="HS256")


def decode_access_token(token: str, verify_exp: bool = True) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=["HS256"],
            options={"verify_exp": verify_exp},
        )
    except JWTError:
        return None


def create_session_token(session_id: str, device_id: str, expires_at: datetime) -> str:
    """Bearer token handed to a device; expires together with the session."""
    return create_access_token(
        subject=session_id,
        expires_at=expires_at,
        extra_claims={"typ": SESSION_TOKEN_TYPE, "device_id": device_id},
    )


def hash_session_token(token: str) -> str:
    """Only the digest is stored server-side."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
