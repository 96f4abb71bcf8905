import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from app.models.user import User
from app.schemas.auth import Token, UserCreate, UserLogin, UserResponse
from app.schemas.clinic import ClinicCreate
from app.services.clinic_service import ClinicService, DuplicateSlug

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# ---------------------------------------------------------
# DEPENDENCIES
# ---------------------------------------------------------
def _extract_token(access_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # Cookie first, then Authorization header
    raw = access_token or authorization
    if not raw:
        return None
    if raw.lower().startswith("bearer "):
        raw = raw[7:]
    return raw.strip() or None


def _user_from_token(token: Optional[str], db: Session) -> Optional[User]:
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload or payload.get("id") is None:
        return None
    user = db.query(User).filter(User.id == payload["id"]).first()
    if not user or not user.is_active:
        return None
    return user


def get_current_user(
    access_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """
    Tries to get token from Cookie first, then Authorization header.
    """
    token = _extract_token(access_token, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = _user_from_token(token, db)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def get_optional_user(
    access_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    return _user_from_token(_extract_token(access_token, authorization), db)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_importer(
    x_api_key: Optional[str] = Header(None),
    user: Optional[User] = Depends(get_optional_user),
) -> Optional[User]:
    """Lead importers authenticate with IMPORT_API_KEY; logged-in users are accepted too."""
    if settings.IMPORT_API_KEY and x_api_key and secrets.compare_digest(x_api_key, settings.IMPORT_API_KEY):
        return user
    if user:
        return user
    raise HTTPException(status_code=401, detail="Valid API key or login required")


# ---------------------------------------------------------
# SIGNUP
# ---------------------------------------------------------
@router.post("/signup", response_model=UserResponse, status_code=201)
def signup(user_in: UserCreate, db: Session = Depends(get_db)):
    email = str(user_in.email).strip().lower()

    # 1. Check if email exists
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    # 2. Create new user
    new_user = User(
        email=email,
        password_hash=get_password_hash(user_in.password),
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        role="clinic",
        is_active=True,
        created_at=datetime.utcnow(),
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    # 3. Optional clinic, owned by the new user
    if user_in.clinic_name:
        try:
            ClinicService(db).create_clinic(ClinicCreate(name=user_in.clinic_name), owner=new_user)
        except DuplicateSlug as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"👤 New signup: {email}")
    return new_user


# ---------------------------------------------------------
# LOGIN
# ---------------------------------------------------------
@router.post("/login", response_model=Token)
def login(response: Response, login_data: UserLogin, db: Session = Depends(get_db)):
    # 1. Check User
    user = db.query(User).filter(User.email == str(login_data.email).strip().lower()).first()
    if not user or not verify_password(login_data.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Incorrect email or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    # 2. Create Token
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.email, "id": user.id, "role": user.role},
        expires_delta=access_token_expires
    )

    user.last_login = datetime.utcnow()
    db.commit()

    # 3. SET COOKIE
    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        expires=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
    )

    return {"access_token": access_token, "token_type": "bearer"}


# ---------------------------------------------------------
# LOGOUT
# ---------------------------------------------------------
@router.post("/logout")
def logout(response: Response):
    response.delete_cookie("access_token")
    return {"message": "Logged out successfully"}


# ---------------------------------------------------------
# ME
# ---------------------------------------------------------
@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user
