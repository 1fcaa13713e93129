# backend/routes/auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import func

from utils.hashing import get_password_hash, verify_password
from utils.tokenJWT import create_access_token, get_current_user
from models import users as models
from schemas import user as schemas
from database import get_db

router = APIRouter(prefix="/api/auth", tags=["Auth"])
logger = logging.getLogger(__name__)


def _auth_response(user: models.User) -> dict:
    access_token = create_access_token(data={"sub": user.email, "role": user.role})
    return {"access_token": access_token, "token_type": "bearer", "user": user}


# Register a new user
@router.post("/signup", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: schemas.SignUpRequest, db: Session = Depends(get_db)):
    # Normalize email input
    normalized_email = payload.email.strip().lower()

    # Check for existing user
    db_user = db.query(models.User).filter(func.lower(models.User.email) == normalized_email).first()
    if db_user:
        logger.info("Signup rejected, email already registered: %s", normalized_email)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    # Create new user instance with hashed password
    new_user = models.User(email=normalized_email, password_hash=get_password_hash(payload.password), role="operator")
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    logger.info("Registered user %s", new_user.id)
    return _auth_response(new_user)


# Authenticate user and issue JWT token
@router.post("/login", response_model=schemas.AuthResponse)
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    normalized_email = payload.email.strip().lower()
    db_user = db.query(models.User).filter(func.lower(models.User.email) == normalized_email).first()

    # Validate credentials
    if not db_user or not verify_password(payload.password, db_user.password_hash):
        logger.info("Failed login for %s", normalized_email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return _auth_response(db_user)


# Retrieve current authenticated user details
@router.get("/profile", response_model=schemas.UserResponse)
def profile(current_user: models.User = Depends(get_current_user)):
    return current_user
