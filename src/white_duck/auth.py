"""Credential store, session tokens and the API key / JWT authorization gate."""

from dataclasses import dataclass
from typing import Callable, Optional
import logging
import secrets
import time

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .errors import (
    InvalidApiKey,
    InvalidCredentials,
    InvalidOrExpiredToken,
    MissingCredential,
)
from .logging_config import mask_secret

logger = logging.getLogger(__name__)

# Header schemes; missing headers are handled by the gate, not by FastAPI
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The single identity the gateway recognizes."""

    username: str

    def to_dict(self) -> dict:
        return {"username": self.username}


@dataclass(frozen=True)
class Credential:
    username: str
    password_hash: str

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r})"


class CredentialStore:
    """Holds the one active principal and its Argon2 password hash."""

    def __init__(self, hasher: Optional[PasswordHasher] = None):
        self._hasher = hasher or PasswordHasher()
        self._credential: Optional[Credential] = None

    def set_principal(self, username: str, password: str) -> Principal:
        """Replace the stored credential unconditionally."""
        self._credential = Credential(username, self._hasher.hash(password))
        logger.info(f"Active principal set to '{username}'")
        return Principal(username)

    @property
    def active_principal(self) -> Optional[Principal]:
        if self._credential is None:
            return None
        return Principal(self._credential.username)

    def is_active(self, principal: Principal) -> bool:
        active = self.active_principal
        return active is not None and active.username == principal.username

    def validate_credentials(self, username: str, password: str) -> Principal:
        """
        Check a username/password pair against the stored credential.

        Raises:
            InvalidCredentials: If the username differs or the password does not verify
        """
        credential = self._credential
        if credential is None or credential.username != username:
            raise InvalidCredentials()
        try:
            self._hasher.verify(credential.password_hash, password)
        except (VerificationError, InvalidHashError):
            raise InvalidCredentials()
        return Principal(username)


class TokenService:
    """Issues and verifies HMAC-signed JWT session tokens. No server-side state."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl_seconds: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue_token(self, principal: Principal) -> str:
        now = int(self._clock())
        claims = {"sub": principal.username, "iat": now, "exp": now + self.ttl_seconds}
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def verify_token(self, token: str) -> Optional[Principal]:
        """Return the token's principal, or None if it is malformed, forged or expired."""
        try:
            # Expiry is checked below against our own clock
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            logger.debug(f"Rejected token: {e}")
            return None
        except Exception as e:
            logger.warning(f"Unreadable token: {e}")
            return None

        subject = payload.get("sub")
        expires_at = payload.get("exp")
        if not isinstance(subject, str) or not subject:
            return None
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            return None
        if expires_at <= self._clock():
            logger.debug("Rejected expired token")
            return None
        return Principal(subject)


class AuthorizationGate:
    """
    Per-request authorization decision, shared by the REST API and the tool protocol.

    Precedence:
        1. auth disabled -> allow
        2. X-API-Key present -> must match, never falls through to the bearer token
        3. Bearer token present -> must verify and name the active principal
        4. otherwise reject
    """

    def __init__(
        self,
        tokens: TokenService,
        credentials: CredentialStore,
        api_key: str,
        enabled: bool = True,
    ):
        self.tokens = tokens
        self.credentials = credentials
        self._api_key = api_key
        self.enabled = enabled

    def check_api_key(self, api_key: str) -> bool:
        if not self._api_key:
            return False
        return secrets.compare_digest(api_key.encode("utf-8"), self._api_key.encode("utf-8"))

    def authorize(
        self, api_key: Optional[str] = None, bearer_token: Optional[str] = None
    ) -> Optional[Principal]:
        """
        Authorize one call.

        Returns:
            The resolved principal for bearer auth, None when allowed without one

        Raises:
            AuthError: When the call must be rejected with 401
        """
        if not self.enabled:
            return None

        if api_key is not None:
            if self.check_api_key(api_key):
                logger.debug("Valid API key authenticated")
                return None
            logger.info(f"Rejected invalid API key {mask_secret(api_key)}")
            raise InvalidApiKey()

        if bearer_token is not None:
            principal = self.tokens.verify_token(bearer_token)
            if principal is not None and self.credentials.is_active(principal):
                logger.debug(f"Valid bearer token for '{principal.username}'")
                return principal
            raise InvalidOrExpiredToken()

        raise MissingCredential()


async def require_auth(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Optional[Principal]:
    """FastAPI dependency applying the gate and attaching the principal to the request."""
    gate: AuthorizationGate = request.app.state.gate
    bearer = credentials.credentials if credentials else None
    principal = gate.authorize(api_key=api_key, bearer_token=bearer)
    request.state.principal = principal
    return principal
