"""
Password hashing and session token signing.

Both are expressed as protocols so handlers depend on the capability, not on
passlib or PyJWT directly; tests and alternative deployments can inject
their own implementations through `create_app`.
"""

import datetime as dt
from dataclasses import dataclass
from typing import Optional, Protocol

import jwt
from passlib.context import CryptContext

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


@dataclass
class TokenClaims:
    user_id: str
    email: Optional[str]


class InvalidTokenError(Exception):
    """Raised when a token is malformed, tampered with, or expired."""


class TokenSigner(Protocol):
    def issue(self, user_id: str, email: str) -> str:
        ...

    def verify(self, token: str) -> TokenClaims:
        ...


class PasslibPasswordHasher:
    def __init__(self, context: Optional[CryptContext] = None):
        self.context = context or CryptContext(
            schemes=["pbkdf2_sha256", "bcrypt_sha256", "bcrypt"],
            default="pbkdf2_sha256",
            deprecated="auto",
        )

    def hash(self, password: str) -> str:
        return self.context.hash(password[:MAX_PASSWORD_BYTES])

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self.context.verify(password[:MAX_PASSWORD_BYTES], password_hash)
        except (ValueError, TypeError):
            # unrecognised or corrupt hash
            return False


class JWTTokenSigner:
    algorithm = "HS256"

    def __init__(self, secret: str, expires_in: int):
        self.secret = secret
        self.expires_in = expires_in

    def issue(self, user_id: str, email: str) -> str:
        now = dt.datetime.now(dt.timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "iat": now,
            "exp": now + dt.timedelta(seconds=self.expires_in),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError(str(e)) from e
        return TokenClaims(user_id=str(payload["sub"]), email=payload.get("email"))
