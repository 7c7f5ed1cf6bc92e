from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .roles import is_platform_admin
from .security import SESSION_COOKIE, decode_access_token


def _user_from_cookie(request: Request, db: Session) -> Optional[User]:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None

    payload = decode_access_token(token)
    if not payload or payload.get("purpose"):
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    return db.query(User).filter(User.id == str(user_id)).first()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    # Verify signed JWT from cookie
    if not request.cookies.get(SESSION_COOKIE):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    user = _user_from_cookie(request, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
        )
    return user


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    return _user_from_cookie(request, db)


def require_platform_admin(user: Optional[User] = Depends(get_optional_user)) -> User:
    if not is_platform_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this resource",
        )
    return user
