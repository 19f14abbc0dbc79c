from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import Settings
from .db import get_db
from .errors import AuthError
from .gateway import PaymentGateway
from .models import User
from .security import InvalidTokenError, PasswordHasher, TokenSigner

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_signer(request: Request) -> TokenSigner:
    return request.app.state.signer


def get_gateway(request: Request) -> Optional[PaymentGateway]:
    return request.app.state.gateway


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    signer: TokenSigner = Depends(get_signer),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthError("Access token required")
    try:
        claims = signer.verify(credentials.credentials)
    except InvalidTokenError:
        raise AuthError("Invalid token", status_code=403)
    user = db.get(User, claims.user_id)
    if not user:
        raise AuthError("User not found")
    return user
