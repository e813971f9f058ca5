import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from taskflow import mailer
from taskflow.config import config
from taskflow.dependencies import get_db, get_current_user, get_session_token
from taskflow.enums import NotificationType
from taskflow.models import User, AuthCredential, TokenBlacklist
from taskflow.notifications import create_notification
from taskflow.schemas import UserCreate, UserLogin, UserResponse, LoginResponse, RegisterResponse, SuccessResponse
from taskflow.security import hash_password, verify_password, create_access_token, generate_email_token, token_expiry
from taskflow.timer import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=config.COOKIE_NAME,
        value=token,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        max_age=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )

# =========================================================
# AUTH ENDPOINTS
# =========================================================
@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == user_data.email).first()
    if existing:
        raise HTTPException(status_code=409, detail="Email already in use")

    user = User(
        email=user_data.email,
        name=user_data.name,
        email_verified=False,
        email_token=generate_email_token()
    )
    db.add(user)
    db.flush()

    auth = AuthCredential(
        user_id=user.id,
        password_hash=hash_password(user_data.password)
    )
    db.add(auth)
    db.commit()

    # No session until the email is verified
    mailer.send_verification_email(user.email, user.email_token)
    logger.info(f"Registered user {user.id}, verification email queued")

    return {"success": True, "message": "Account created! Check your email to activate your account."}

@router.get("/verify-email")
def verify_email(token: Optional[str] = Query(None), db: Session = Depends(get_db)):
    if not token:
        return RedirectResponse(f"{config.APP_URL}/auth/login?error=Invalid+token")

    user = db.query(User).filter(User.email_token == token).first()
    if not user:
        return RedirectResponse(f"{config.APP_URL}/auth/login?error=Invalid+or+expired+token")

    user.email_verified = True
    user.email_token = None
    db.commit()

    try:
        create_notification(
            db, user.id, NotificationType.success,
            "Email verified", "Your email was verified successfully!",
            kind="email_verified",
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create verification notification for user {user.id}: {e}")

    response = RedirectResponse(f"{config.APP_URL}/dashboard")
    _set_session_cookie(response, create_access_token({"sub": user.id, "email": user.email}))
    return response

@router.post("/login", response_model=LoginResponse)
def login(credentials: UserLogin, response: Response, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == credentials.email).first()
    if not user or not user.auth_credential:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not verify_password(credentials.password, user.auth_credential.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.email_verified:
        raise HTTPException(status_code=403, detail="Please verify your email before logging in")

    token = create_access_token({"sub": user.id, "email": user.email})
    _set_session_cookie(response, token)
    return {"user": user, "access_token": token, "token_type": "bearer"}

@router.post("/logout", response_model=SuccessResponse)
def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        create_notification(
            db, current_user.id, NotificationType.info,
            "Logged out", f"Session ended at {utcnow().strftime('%Y-%m-%d %H:%M')} UTC",
            send_email=False, kind="logout",
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create logout notification for user {current_user.id}: {e}")

    db.add(TokenBlacklist(token=token, expires_at=token_expiry(token)))
    db.commit()

    response.delete_cookie(config.COOKIE_NAME, path="/")
    return {"success": True}

@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
