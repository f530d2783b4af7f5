"""
Authentication Routes and Dependencies
"""
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, status, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from vehicle_rental.core.mongodb import get_db
from vehicle_rental.core.security import (
    InvalidTokenError,
    TokenExpiredError,
    create_access_token,
    decode_access_token,
    verify_password,
)
from vehicle_rental.core import crud
from vehicle_rental.core.rate_limit import limit_auth_requests

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"], dependencies=[Depends(limit_auth_requests)])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

Role = Literal["user", "vendor", "mechanic", "admin"]
PHONE_PATTERN = r"^[0-9]{10}$"


# ============ Schemas ============

class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(default_factory=lambda: [0, 0], min_length=2, max_length=2)


class UserCreate(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    role: Role = "user"
    address: Optional[str] = None
    location: Optional[GeoPoint] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ============ Dependencies ============

def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Database = Depends(get_db)
) -> dict:
    if not token:
        raise _unauthorized("Not authorized, no token")

    try:
        payload = decode_access_token(token)
    except TokenExpiredError:
        raise _unauthorized("Token expired")
    except InvalidTokenError:
        raise _unauthorized("Invalid token format")

    user = crud.get_user_by_id(db, payload.get("sub"))
    if user is None:
        raise _unauthorized("User not found")

    if not user.get("is_active", True):
        raise _unauthorized("Account is deactivated")

    return user


def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Database = Depends(get_db)
) -> Optional[dict]:
    """Current user when a valid token is sent, otherwise None"""
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except InvalidTokenError:
        return None
    user = crud.get_user_by_id(db, payload.get("sub"))
    if user is None or not user.get("is_active", True):
        return None
    return user


def require_roles(*roles: str):
    """Dependency factory that admits only the given roles"""

    def checker(current_user: dict = Depends(get_current_user)) -> dict:
        role = current_user.get("role")
        if role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role {role} is not authorized to access this route"
            )
        if role == "vendor" and not current_user.get("is_approved"):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your vendor account is pending approval"
            )
        return current_user

    return checker


get_current_admin = require_roles("admin")


def auth_response(user: dict, token: str) -> dict:
    return {
        "id": user.get("id"),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "role": user.get("role"),
        "address": user.get("address"),
        "is_approved": user.get("is_approved", False),
        "token": token,
    }


def _issue_token(user: dict) -> str:
    return create_access_token(data={"sub": user.get("id"), "role": user.get("role")})


def _authenticate(db: Database, email: str, password: str) -> dict:
    user = crud.get_user_by_email(db, email)

    if not user or not verify_password(password, user.get("password_hash", "")):
        raise _unauthorized("Invalid email or password")

    if not user.get("is_active", True):
        raise _unauthorized("Account is deactivated")

    if user.get("role") == "vendor" and not user.get("is_approved"):
        raise _unauthorized("Your vendor account is pending approval. Please contact admin.")

    return user


# ============ Routes ============

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Database = Depends(get_db)):
    """Register a new account"""
    site_settings = crud.get_settings(db)
    if not site_settings.get("system", {}).get("allow_registration", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Registration is currently disabled"
        )

    if crud.get_user_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists with this email"
        )

    user = crud.create_user(db, user_data.model_dump(exclude_none=True))
    logger.info("Registered %s account %s", user["role"], user["id"])
    return auth_response(user, _issue_token(user))


@router.post("/login")
def login(credentials: UserLogin, db: Database = Depends(get_db)):
    """Login with JSON body"""
    user = _authenticate(db, credentials.email, credentials.password)
    return auth_response(user, _issue_token(user))


@router.post("/token", response_model=Token)
def login_form(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Database = Depends(get_db)
):
    """OAuth2 password flow login, used by the interactive docs"""
    user = _authenticate(db, form_data.username, form_data.password)
    return {"access_token": _issue_token(user), "token_type": "bearer"}


@router.get("/me")
def get_current_user_info(current_user: dict = Depends(get_current_user)):
    """Get current user information"""
    return crud.user_public(current_user)


@router.post("/logout")
def logout(current_user: dict = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy
    return {"message": "Logged out successfully"}
