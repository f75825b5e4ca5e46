"""
Access token issuing and verification
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Request
from jose import JWTError, jwt
from taskflow.models.task import User
from taskflow.utils.logger import logger


ACCESS_TOKEN_COOKIE = "access_token"


class AccessTokenVerifier:
    """Signs and verifies JWT access tokens"""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_minutes: int = 60):
        """
        Initialize verifier

        Args:
            secret: Signing secret
            algorithm: JWT algorithm
            ttl_minutes: Lifetime of issued tokens
        """
        if not secret:
            raise ValueError("AUTH_SECRET must be set")
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = timedelta(minutes=ttl_minutes)
        self.logger = logger

    def issue(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        """Create a signed token for the user"""
        expire = datetime.now(timezone.utc) + (expires_delta or self.ttl)
        claims = {"sub": user.id, "exp": expire}
        if user.email:
            claims["email"] = user.email
        if user.name:
            claims["name"] = user.name
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> Optional[User]:
        """
        Decode a token into a user

        Args:
            token: Encoded JWT

        Returns:
            User, or None when the token is missing, expired or invalid
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            self.logger.debug(f"[Auth] Rejected token: {e}")
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None
        return User(id=user_id, email=payload.get("email"), name=payload.get("name"))


def extract_token(request: Request) -> Optional[str]:
    """Bearer header first, then the access_token cookie"""
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


def get_current_user(request: Request) -> Optional[User]:
    """
    FastAPI dependency returning the authenticated user, if any

    The middleware stores the verified user on request.state; requests that
    bypass it (public paths) are verified here.
    """
    user = getattr(request.state, "user", None)
    if user is not None:
        return user
    container = getattr(request.app.state, "container", None)
    if container is None:
        return None
    return container.token_verifier.verify(extract_token(request))
