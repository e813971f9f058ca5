import logging
from typing import Optional
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt
from taskflow.config import config
from taskflow.database import SessionLocal
from taskflow.models import User, TokenBlacklist
from taskflow.security import decode_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Session token from the auth cookie, or from a Bearer header."""
    token = request.cookies.get(config.COOKIE_NAME)
    if token:
        return token
    if credentials is not None:
        return credentials.credentials
    return None

def get_current_user(
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db)
) -> User:
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    if not config.SECRET_KEY:
        raise HTTPException(status_code=500, detail="Server misconfiguration: SECRET_KEY not set")

    blacklisted = db.query(TokenBlacklist).filter(TokenBlacklist.token == token).first()
    if blacklisted:
        logger.debug("Blacklisted token rejected")
        raise HTTPException(status_code=401, detail="Token has been invalidated (logged out)")

    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token decode error: {e!r}")
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token: subject is not an integer id")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    return user
