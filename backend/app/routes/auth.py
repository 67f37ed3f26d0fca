from fastapi import APIRouter, Depends, HTTPException, Request
import os
from sqlalchemy.orm import Session
from ..database import get_db
from .. import models, schemas
from ..activity import log_activity
from ..auth import get_password_hash, verify_password, create_access_token, get_current_user
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
testing = os.getenv("TESTING") == "1"

def rate_limit(limit: str):
    if testing:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)

router = APIRouter(prefix="/api/auth", tags=["auth"])

@router.post("/register", response_model=schemas.Token)
@rate_limit("5/minute")
async def register(request: Request, user: schemas.UserCreate, db: Session = Depends(get_db)):
    email = user.email.lower()
    existing = db.query(models.User).filter(models.User.email == email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    # the first account bootstraps the organization
    first_account = db.query(models.User.id).first() is None
    db_user = models.User(
        email=email,
        hashed_password=get_password_hash(user.password),
        full_name=user.full_name,
        role=models.ROLE_SUPER_ADMIN if first_account else models.ROLE_USER,
    )
    db.add(db_user)
    db.flush()
    log_activity(
        db,
        db_user.id,
        "USER_REGISTERED",
        "User Registered",
        description=f"{db_user.email} joined",
        entity_type="user",
        entity_id=db_user.id,
    )
    db.commit()
    token = create_access_token({"sub": db_user.email})
    return schemas.Token(access_token=token)


@router.post("/login", response_model=schemas.Token)
@rate_limit("10/minute")
async def login(request: Request, user: schemas.LoginRequest, db: Session = Depends(get_db)):
    db_user = db.query(models.User).filter(models.User.email == user.email.lower()).first()
    if not db_user or not verify_password(user.password, db_user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not db_user.is_active:
        raise HTTPException(status_code=403, detail="Account disabled")
    token = create_access_token({"sub": db_user.email})
    return schemas.Token(access_token=token)


@router.get("/me", response_model=schemas.ProfileOut)
async def read_profile(current_user: models.User = Depends(get_current_user)):
    return current_user
