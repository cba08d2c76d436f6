from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from jose import jwt
from passlib.context import CryptContext

from leadcrm.core.config import Settings, settings as default_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_KIND = "access"


class TokenManager:
    """Signs and reads the bearer tokens admins and providers call the API with.

    Tokens are issued out of band (admin tooling, tests); the API only
    verifies them.
    """

    @staticmethod
    def create_access_token(
        claims: Dict[str, Any],
        expires_delta: Optional[timedelta] = None,
        settings: Optional[Settings] = None,
    ) -> str:
        settings = settings or default_settings
        issued_at = datetime.now(timezone.utc)
        lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

        payload = {
            **claims,
            "iat": issued_at,
            "exp": issued_at + lifetime,
            "jti": uuid4().hex,
            "type": ACCESS_TOKEN_KIND,
        }
        return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def decode_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
        """Verified claims of ``token``.

        Raises ``ExpiredSignatureError`` or ``JWTError`` from python-jose, and
        ``ValueError`` for a well-signed token that is not an access token.
        """
        settings = settings or default_settings
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"verify_aud": False},
        )
        if payload.get("type") != ACCESS_TOKEN_KIND:
            raise ValueError("not an access token")
        return payload

    @staticmethod
    def hash_password(password: str) -> str:
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
        # Providers created without a password can never match
        if not hashed_password:
            return False
        return pwd_context.verify(plain_password, hashed_password)
