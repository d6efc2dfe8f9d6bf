import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from auth import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    load_token_user,
    verify_password,
)
from database import get_db
from models import User
from schemas import RefreshTokenRequest, TokenResponse, UserLogin, UserResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _issue_tokens(user: User) -> TokenResponse:
    claims = {"sub": user.id, "role": user.role.value}
    return TokenResponse(
        access_token=create_access_token(data=claims),
        refresh_token=create_refresh_token(data=claims),
        user=UserResponse.model_validate(user),
    )


@router.post("/auth/login", response_model=TokenResponse)
def login(login_data: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == login_data.email.lower()).first()
    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.info("Failed login for %s", login_data.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _issue_tokens(user)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh_token(token_data: RefreshTokenRequest, db: Session = Depends(get_db)):
    claims = decode_token(token_data.refresh_token, expected_type=REFRESH_TOKEN)
    return _issue_tokens(load_token_user(db, claims))


@router.get("/auth/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)
