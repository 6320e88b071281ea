"""
Identity provider: password hashing and bearer tokens.

Passwords are hashed with PBKDF2-SHA256 (passlib); access tokens are
HS256 JWTs (python-jose) carrying the user id and user type.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from src.domain.entities import Principal
from src.domain.enums import UserType
from src.domain.errors import Unauthorized


class IdentityProvider:
    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 1440):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self._pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

    @classmethod
    def from_settings(cls, settings) -> "IdentityProvider":
        return cls(
            settings.jwt_secret,
            settings.jwt_algorithm,
            settings.access_token_expire_minutes,
        )

    def hash_password(self, password: str) -> str:
        return self._pwd.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        return self._pwd.verify(password, password_hash)

    def issue_token(self, user_id: int, user_type: UserType | str) -> str:
        expires = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        claims = {
            "sub": str(user_id),
            "user_type": UserType(user_type).value,
            "exp": expires,
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def authenticate(self, token: str) -> Principal:
        """Decode a bearer token into a ``Principal``; raise ``Unauthorized``."""
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
            return Principal(
                user_id=int(claims["sub"]),
                user_type=UserType(claims["user_type"]),
            )
        except (JWTError, KeyError, ValueError) as exc:
            raise Unauthorized("Invalid or expired token") from exc
