"""Bearer-token authentication, the admin gate and password hashing."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import errors

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class CredentialVerifier:
    """Signs and verifies HMAC JWTs against a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", expires_minutes: int = 24 * 60):
        if not secret:
            raise errors.ConfigurationError("JWT_SECRET is not defined")
        self.secret = secret
        self.algorithm = algorithm
        self.expires = timedelta(minutes=expires_minutes)

    def issue(self, email: str, user_id: Optional[str] = None, **claims: Any) -> str:
        now = datetime.now(timezone.utc)
        payload = {"email": email, "iat": now, "exp": now + self.expires, **claims}
        if user_id:
            payload["sub"] = str(user_id)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise errors.InvalidToken("Unauthorized: Token expired")
        except jwt.InvalidTokenError as exc:
            logger.info("Token rejected", reason=str(exc))
            raise errors.InvalidToken()

        if not isinstance(claims.get("email"), str) or not claims["email"]:
            raise errors.InvalidToken()
        return claims


class AccessGate:
    """Restricts an operation to a configured set of privileged identities."""

    def __init__(self, privileged: Iterable[str]):
        self.privileged = frozenset(email.strip().lower() for email in privileged)

    def allows(self, claims: Dict[str, Any]) -> bool:
        email = claims.get("email") or ""
        return email.strip().lower() in self.privileged

    def check(self, claims: Dict[str, Any]) -> Dict[str, Any]:
        if not self.allows(claims):
            logger.warning("Admin access denied", email=claims.get("email"))
            raise errors.Forbidden()
        return claims


def hash_password(password: str, rounds: int = 12) -> str:
    # CPU-bound and runs on the event loop; each extra round doubles the stall.
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def check_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ---------- FastAPI dependencies ----------

def get_verifier(request: Request) -> CredentialVerifier:
    return request.app.state.verifier


def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate


def optional_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: CredentialVerifier = Depends(get_verifier),
) -> Optional[Dict[str, Any]]:
    if credentials is None:
        return None
    return verifier.verify(credentials.credentials)


def current_claims(claims: Optional[Dict[str, Any]] = Depends(optional_claims)) -> Dict[str, Any]:
    if claims is None:
        raise errors.Unauthenticated()
    return claims


def require_admin(
    claims: Dict[str, Any] = Depends(current_claims),
    gate: AccessGate = Depends(get_gate),
) -> Dict[str, Any]:
    return gate.check(claims)
