import secrets
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from passlib.context import CryptContext
from taskflow.config import config
from taskflow.timer import utcnow

# =========================================================
# SECURITY CONFIG
# =========================================================
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def generate_email_token() -> str:
    return secrets.token_urlsafe(24)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    to_encode["sub"] = str(to_encode["sub"])

    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)

def decode_access_token(token: str) -> dict:
    """Decode and verify a session token. Raises jwt.InvalidTokenError subclasses."""
    return jwt.decode(
        token,
        config.SECRET_KEY,
        algorithms=[config.ALGORITHM],
        options={"verify_signature": True, "verify_exp": True},
    )

def token_expiry(token: str) -> datetime:
    """Expiry of a token without verifying it, falling back to now."""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
        exp = payload.get("exp")
        if exp:
            return datetime.fromtimestamp(exp, timezone.utc).replace(tzinfo=None)
    except jwt.InvalidTokenError:
        pass
    return utcnow()
