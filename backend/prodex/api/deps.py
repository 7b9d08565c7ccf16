# backend/prodex/api/deps.py
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..core.config import SessionLocal
from ..core.errors import Forbidden
from ..core.roles import has_capability, parse_role
from ..core.security import decode_token
from ..models import User

# Single bearer field for Swagger "Authorize"
auth_scheme = HTTPBearer(auto_error=True)


# ---------------------------
# DB Session Dependency
# ---------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------------------
# Current User DTO
# ---------------------------
class CurrentUser:
    def __init__(self, id: int, email: str, role_name: str):
        self.id = id
        self.email = email
        self.role_name = role_name


# ---------------------------
# AuthN: Token -> CurrentUser
# ---------------------------
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser:
    token = credentials.credentials
    try:
        payload = decode_token(token)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id: Optional[str] = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.get(User, int(user_id))
    if not user or user.is_active is False:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # The stored role wins over the token claim
    role_name = user.role_name or payload.get("role") or ""
    return CurrentUser(id=user.id, email=user.email, role_name=role_name)


# ---------------------------
# AuthZ: Capability Check
# ---------------------------
def require_capability(needed: str):
    """
    Usage:
      current: CurrentUser = Depends(require_capability("quotes:create"))

    Unknown roles are rejected; otherwise the role's capability table is
    matched exactly or through "resource:*" / "*" wildcards.
    """

    def checker(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        try:
            role = parse_role(current.role_name)
        except Forbidden:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")
        if not has_capability(role, needed):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")
        return current

    return checker
