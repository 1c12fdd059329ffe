from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from cmms.config import Settings
from cmms.errors import InvalidCredential, InvalidToken, Unauthenticated
from cmms.lifecycle import Role
from cmms.logging_config import get_logger
from cmms.models import User

logger = get_logger("auth")

_REQUIRED_CLAIMS = ("sub", "name", "email", "role", "exp")


@dataclass(frozen=True)
class Identity:
    """Snapshot of an authenticated user, as carried inside a bearer token.

    The snapshot is trusted for the life of the token: role or name changes
    made after issue are not seen until the user logs in again.
    """

    id: str
    name: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)

    def as_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


class PasswordHasher:
    """Default credential verifier backed by werkzeug's salted hashes."""

    def hash(self, secret: str) -> str:
        return generate_password_hash(secret)

    def verify(self, secret: str, stored_hash: str) -> bool:
        return check_password_hash(stored_hash, secret)


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalars(select(User).where(func.lower(User.email) == email.strip().lower())).first()


def authenticate(db: Session, email: str, password: str, hasher: PasswordHasher) -> User:
    user = find_user_by_email(db, email or "")
    if user is None or not hasher.verify(password or "", user.password_hash):
        logger.warning("login failed for %s", email)
        raise InvalidCredential("Invalid credentials")
    return user


def issue_token(identity: Identity, settings: Settings, now: Optional[datetime] = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": identity.id,
        "name": identity.name,
        "email": identity.email,
        "role": identity.role,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.token_ttl_days),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Identity:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": list(_REQUIRED_CLAIMS)},
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidToken("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidToken(f"Invalid token: {exc}") from exc
    return Identity(id=claims["sub"], name=claims["name"], email=claims["email"], role=claims["role"])


def identity_from_header(authorization: Optional[str], settings: Settings) -> Identity:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthenticated("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("Missing bearer token")
    return decode_token(token, settings)
