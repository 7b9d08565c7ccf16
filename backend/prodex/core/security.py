# backend/prodex/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import settings
from .errors import Unauthorized
from ..models import User

# Password hashing (bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# JWT issue/read. Tokens are minted by the identity provider with the shared key;
# create_access_token is kept for tooling and tests.
def create_access_token(
    subject: str,              # user id (string)
    role_name: str,
    expires_minutes: Optional[int] = None
) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {"sub": subject, "role": role_name, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        raise ValueError("Invalid token") from e


def authenticate(db: Session, email: Optional[str], password: Optional[str]):
    """
    Identity provider check used by the approval gate.
    Returns the active User for the credentials or raises Unauthorized.
    """
    email_lc = (email or "").strip().lower()
    if not email_lc or not password:
        raise Unauthorized("Invalid supervisor credentials")

    user = db.query(User).filter(User.email == email_lc).first()
    if not user or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid supervisor credentials")
    if user.is_active is False:
        raise Unauthorized("Supervisor account is inactive")
    return user
