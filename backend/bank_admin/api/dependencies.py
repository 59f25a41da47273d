from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from bank_admin.core.database import get_db
from bank_admin.core.middleware import AuthenticatedUser
from bank_admin.models.user import User, UserRole


async def get_current_user(request: Request) -> AuthenticatedUser:
    """
    Identity resolved by the session gate middleware.

    Protected paths are already redirected by the gate; this dependency is
    the second line for handlers mounted elsewhere.
    """
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return user


async def require_admin(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    if current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return current_user


async def get_current_db_user(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    """The current user as a live ORM row, for handlers that modify it"""
    user = db.query(User).filter(User.id == current_user.id).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return user
