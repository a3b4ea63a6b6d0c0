from fastapi import APIRouter, Depends, Form, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.user import UserCreate, UserResponse, TokenWithUser
from app.services.auth_service import AuthService
from app.repositories.user_repository import UserRepository

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """Cria a conta e vincula compras feitas sem conta com o mesmo email."""
    return AuthService(UserRepository(db)).register(user_data)


@router.post("/login", response_model=TokenWithUser)
def login(
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    return AuthService(UserRepository(db)).login(email, password)
