"""
Auth API Router
Endpoints for signup, login and user administration
"""

from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from api.deps import get_db, require_role, services
from api.schemas.auth import SignupRequest, LoginRequest, UserResponse, AuthResponse
from models import UserRole
from services.auth_service import create_access_token


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    signup_data: SignupRequest,
    db: Session = Depends(get_db)
):
    """
    Create an account and return a token

    - **email**: must be unique
    - **password**: at least 6 characters
    - **role**: patient (default), caretaker, doctor or admin
    """
    auth_service = services.get_auth_service()

    user = await auth_service.signup(
        name=signup_data.name,
        email=signup_data.email,
        password=signup_data.password,
        phone=signup_data.phone,
        role=signup_data.role,
        db=db
    )
    return AuthResponse(
        message="User created successfully",
        user=UserResponse.model_validate(user),
        token=create_access_token(user.id, user.role.value),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Exchange credentials for a token
    """
    auth_service = services.get_auth_service()

    user = await auth_service.authenticate(login_data.email, login_data.password, db=db)
    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        token=create_access_token(user.id, user.role.value),
    )


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    _admin=Depends(require_role(UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """
    List all accounts (admin only)
    """
    auth_service = services.get_auth_service()
    return await auth_service.list_users(db=db)
