from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db import get_db
from .deps import get_current_user, get_hasher, get_signer
from .errors import AuthError, ConflictError
from .logging import get_logger
from .models import User
from .schemas import LoginIn, RegisterIn, UserOut, UserWithSubscriptionOut
from .security import PasswordHasher, TokenSigner

logger = get_logger("auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(
    payload: RegisterIn,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    signer: TokenSigner = Depends(get_signer),
):
    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email already registered")
    user = User(email=email, password_hash=hasher.hash(payload.password), name=payload.name, is_admin=False)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email already registered")
    db.refresh(user)
    logger.info("user.registered", extra={"user_id": user.id})
    return {
        "message": "User created successfully",
        "token": signer.issue(user.id, user.email),
        "user": UserOut.model_validate(user),
    }


@router.post("/login")
def login(
    payload: LoginIn,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    signer: TokenSigner = Depends(get_signer),
):
    user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
    if not user or not hasher.verify(payload.password, user.password_hash):
        raise AuthError("Invalid credentials")
    return {
        "message": "Login successful",
        "token": signer.issue(user.id, user.email),
        "user": UserWithSubscriptionOut.model_validate(user),
    }


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": UserWithSubscriptionOut.model_validate(user)}
