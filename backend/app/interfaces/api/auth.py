from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.application.services.auth_service import AuthService
from app.core.security import create_access_token
from app.domain.models.user import User
from app.interfaces.api.deps import get_current_user
from app.infrastructure.db.session import get_db

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=1)


def _serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "status": user.status,
        "last_login": user.last_login.isoformat() if user.last_login else None,
    }


@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> dict:
    user = AuthService.authenticate(db, username=payload.username, password=payload.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return {
        "access_token": create_access_token(user_id=user.id, role=user.role),
        "token_type": "bearer",
        "user": _serialize_user(user),
    }


@router.get("/me")
def me(current_user: User = Depends(get_current_user)) -> dict:
    return _serialize_user(current_user)
