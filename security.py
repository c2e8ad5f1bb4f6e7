"""
Password hashing and access tokens.

Tokens are HS256 JWTs carrying ``username`` and ``accountId`` plus the
standard ``iat``/``exp`` claims. They are stateless: nothing is stored on the
server and a token stays valid until ``exp`` passes.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import bcrypt
import jwt

from config import get_settings
from errors import ExpiredToken, InvalidToken
from models import TokenClaims

BCRYPT_MAX_PASSWORD_BYTES = 72


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of ``password``."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


class TokenService:
    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expires_in: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_in = expires_in
        self.clock = clock

    def issue(self, username: str, account_id: str) -> str:
        """Sign a token for ``username`` that expires ``expires_in`` from now."""
        issued_at = self.clock()
        payload = {
            "username": username,
            "accountId": account_id,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.expires_in).timestamp()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Check signature and expiry and return the embedded claims.

        Raises ExpiredToken once ``exp`` has passed and InvalidToken for any
        other problem (bad signature, malformed token, missing claims).
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                # Expiry is checked below against our own clock
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "iat"]},
            )
        except jwt.InvalidTokenError as e:
            raise InvalidToken() from e

        username = payload.get("username")
        account_id = payload.get("accountId")
        if not isinstance(username, str) or not isinstance(account_id, str):
            raise InvalidToken()

        try:
            issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise InvalidToken() from e

        if self.clock() >= expires_at:
            raise ExpiredToken()

        return TokenClaims(
            username=username,
            account_id=account_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )


def get_token_service() -> TokenService:
    settings = get_settings()
    return TokenService(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_in=timedelta(minutes=settings.access_token_expire_minutes),
    )
