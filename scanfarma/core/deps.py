"""
FastAPI dependencies for the authenticated user and their pharmacy.
"""
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from scanfarma.core.security import decode_token
from scanfarma.db.session import get_db
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer access token to a user."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        raise unauthorized

    try:
        user_id = UUID(payload.get("sub", ""))
    except (TypeError, ValueError):
        raise unauthorized

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise unauthorized
    return user


def get_current_pharmacy(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Pharmacy:
    """The pharmacy owned by the current user; every stock query is scoped to it."""
    pharmacy = db.query(Pharmacy).filter(Pharmacy.owner_id == current_user.id).first()
    if not pharmacy:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pharmacy found. Create one first.",
        )
    return pharmacy
