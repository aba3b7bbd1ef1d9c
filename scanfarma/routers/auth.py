"""
Authentication router: register, login, current user and pharmacy setup.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from scanfarma.core.deps import get_current_pharmacy, get_current_user
from scanfarma.core.security import create_access_token, hash_password, verify_password
from scanfarma.db.session import get_db
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.models.user import User
from scanfarma.schemas.auth import (
    PharmacyCreate,
    PharmacyResponse,
    Token,
    UserLogin,
    UserRegister,
    UserResponse,
)
from scanfarma.services.notification_rules import NotificationRuleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(user_data: UserRegister, db: Session = Depends(get_db)) -> Token:
    """
    Register a new user account.
    Returns an access token on success.
    """
    existing_user = db.query(User).filter(User.email == user_data.email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    new_user = User(
        email=user_data.email,
        hashed_password=hash_password(user_data.password),
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    logger.info(f"Registered user {new_user.id}")

    return Token(access_token=create_access_token(subject=str(new_user.id)))


@router.post("/login", response_model=Token)
def login(user_data: UserLogin, db: Session = Depends(get_db)) -> Token:
    """
    Authenticate user and return an access token.
    """
    user = db.query(User).filter(User.email == user_data.email).first()
    if not user or not verify_password(user_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    return Token(access_token=create_access_token(subject=str(user.id)))


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)) -> User:
    """
    Get the current authenticated user's profile.
    """
    return current_user


@router.post("/pharmacy", response_model=PharmacyResponse, status_code=status.HTTP_201_CREATED)
def create_pharmacy(
    pharmacy_data: PharmacyCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a pharmacy for the current user.
    Each user can only have one pharmacy; its alert rules start at the defaults.
    """
    existing = db.query(Pharmacy).filter(Pharmacy.owner_id == current_user.id).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You already have a pharmacy",
        )

    pharmacy = Pharmacy(
        name=pharmacy_data.name,
        timezone=pharmacy_data.timezone,
        owner_id=current_user.id,
    )
    db.add(pharmacy)
    db.commit()
    db.refresh(pharmacy)

    NotificationRuleService(db, pharmacy.id).ensure_default_rules()
    db.refresh(pharmacy)
    return pharmacy


@router.get("/pharmacy", response_model=PharmacyResponse)
def get_my_pharmacy(pharmacy: Pharmacy = Depends(get_current_pharmacy)):
    """
    Get the current user's pharmacy.
    """
    return pharmacy
