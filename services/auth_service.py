"""
Auth Service
Password hashing, JWT issuing and account management
"""

import logging
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from services.errors import AuthenticationFailed, ConflictError


logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT carrying the user id and role."""
    expire_dt = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {
        "userId": str(user_id),
        "role": role,
        "exp": int(expire_dt.timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raise AuthenticationFailed otherwise."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode failed: {e}")
        raise AuthenticationFailed("Invalid or expired token")

    if not payload.get("userId") or not payload.get("role"):
        raise AuthenticationFailed("Invalid or expired token")
    return payload


class AuthService:
    """
    Service for signup, login and user lookup
    """

    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        role: models.UserRole = models.UserRole.PATIENT,
        db: Optional[Session] = None
    ) -> models.User:
        """Create a user account; emails are unique"""
        def _signup(session: Session) -> models.User:
            existing = session.query(models.User).filter(
                models.User.email == email
            ).first()
            if existing:
                raise ConflictError("email already registered")

            user = models.User(
                name=name,
                email=email,
                phone=phone,
                role=role,
                password_hash=hash_password(password),
                is_active=True,
            )
            session.add(user)
            session.commit()
            session.refresh(user)

            logger.info(f"Created user {user.id} with role {user.role.value}")
            return user

        if db:
            return _signup(db)

        with get_db_context() as session:
            return _signup(session)

    async def authenticate(
        self,
        email: str,
        password: str,
        db: Optional[Session] = None
    ) -> models.User:
        """Return the user for valid credentials"""
        def _auth(session: Session) -> models.User:
            user = session.query(models.User).filter(
                models.User.email == email
            ).first()
            if not user or not verify_password(password, user.password_hash):
                logger.warning(f"Failed login for {email}")
                raise AuthenticationFailed("invalid credentials")
            if not user.is_active:
                raise AuthenticationFailed("account disabled")
            return user

        if db:
            return _auth(db)

        with get_db_context() as session:
            return _auth(session)

    async def get_user(
        self,
        user_id: int,
        db: Optional[Session] = None
    ) -> Optional[models.User]:
        """Get user by ID"""
        def _get(session: Session) -> Optional[models.User]:
            return session.query(models.User).filter(
                models.User.id == user_id
            ).first()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def list_users(
        self,
        db: Optional[Session] = None
    ) -> List[models.User]:
        def _list(session: Session) -> List[models.User]:
            return session.query(models.User).order_by(models.User.id).all()

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)


# Singleton instance
auth_service = AuthService()
