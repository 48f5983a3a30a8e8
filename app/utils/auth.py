# app/utils/auth.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from typing import Optional

from app.config.settings import WorkflowConfig
from app.database import get_db
from app.models.user import User
from app.schemas import UserSummary

SECRET_KEY = WorkflowConfig.AUTH['secret_key']
ALGORITHM = WorkflowConfig.AUTH['algorithm']

# Tokens are issued by the identity provider, this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    payload = verify_token(token)
    if payload is None:
        raise credentials_exception
    email: str = payload.get("sub")
    if email is None:
        raise credentials_exception

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise credentials_exception

    # Check if user is active
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account has been deactivated. Please contact administrator.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user

def get_acting_user(current_user: User = Depends(get_current_user)) -> UserSummary:
    """The explicit acting user handed to every engine call"""
    return UserSummary(**current_user.summary())

def create_access_token(email: str) -> str:
    return jwt.encode({"sub": email}, SECRET_KEY, algorithm=ALGORITHM)

def verify_token(token: str) -> Optional[dict]:
    """Verify JWT token and return payload without raising exceptions"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

def user_from_token(db: Session, token: Optional[str]) -> Optional[User]:
    """Resolve an active user from a raw token (WebSocket query parameter)"""
    if not token:
        return None
    payload = verify_token(token)
    if not payload or "sub" not in payload:
        return None
    user = db.query(User).filter(User.email == payload["sub"]).first()
    if user is None or not user.is_active:
        return None
    return user
