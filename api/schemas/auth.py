"""
Auth Schemas
Pydantic models for signup, login and user listings
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, ConfigDict

from models import UserRole


# ==================== REQUEST SCHEMAS ====================

class SignupRequest(BaseModel):
    """Schema for creating an account"""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, min_length=10, max_length=20)
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole = UserRole.PATIENT


class LoginRequest(BaseModel):
    """Schema for logging in"""
    email: EmailStr
    password: str = Field(..., min_length=1)


# ==================== RESPONSE SCHEMAS ====================

class UserResponse(BaseModel):
    """Public user fields"""
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    """Signup and login response"""
    message: str
    user: UserResponse
    token: str
