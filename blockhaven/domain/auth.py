"""Auth Domain Logic.

Sign-in itself happens at the external identity provider. This module only
verifies the token the provider hands back, enforces the admin allowlist and
issues/reads the service's own signed session cookie.
"""
import jwt
import requests
import logging
import time
from dataclasses import dataclass
from typing import Optional, Dict, List, Any
from datetime import datetime, timedelta, timezone

from starlette.requests import Request

from blockhaven.errors import AuthError, ForbiddenError, UpstreamUnavailable
from blockhaven.settings import Settings

logger = logging.getLogger(__name__)

SESSION_ISSUER = "blockhaven-admin"


@dataclass(frozen=True)
class Identity:
    user_id: str
    username: str
    email: Optional[str] = None
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": {"id": self.user_id, "githubUsername": self.username, "email": self.email},
            "expires": datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat() if self.expires_at else None,
        }


class JwtValidator:
    def __init__(self, jwks_url: Optional[str] = None, issuer: Optional[str] = None, audience: Optional[str] = None, secret: Optional[str] = None):
        self.jwks_url = jwks_url
        self.issuer = issuer
        self.audience = audience
        self.secret = secret
        self._jwks_cache: Optional[Dict[str, Any]] = None
        self._jwks_last_fetch: Optional[datetime] = None

    def _fetch_jwks(self) -> Dict[str, Any]:
        if not self.jwks_url:
            return {}

        now = datetime.now(timezone.utc)
        if self._jwks_cache and self._jwks_last_fetch and (now - self._jwks_last_fetch) < timedelta(hours=1):
            return self._jwks_cache

        try:
            response = requests.get(self.jwks_url, timeout=10)
            response.raise_for_status()
            self._jwks_cache = response.json()
            self._jwks_last_fetch = now
            return self._jwks_cache
        except requests.RequestException as e:
            logger.error(f"Failed to fetch JWKS from {self.jwks_url}: {e}")
            if self._jwks_cache:
                return self._jwks_cache
            raise UpstreamUnavailable("Identity provider unavailable") from e

    def validate_token(self, token: str) -> Dict[str, Any]:
        """Validate an identity-provider JWT and return claims."""
        options = {"verify_aud": self.audience is not None}
        try:
            if self.secret and not self.jwks_url:
                return jwt.decode(token, self.secret, algorithms=["HS256"], audience=self.audience, issuer=self.issuer, options=options)

            kid = jwt.get_unverified_header(token).get("kid")
            public_key = None
            for key in self._fetch_jwks().get("keys", []):
                if key.get("kid") == kid:
                    public_key = jwt.algorithms.RSAAlgorithm.from_jwk(key)
                    break
            if public_key is None:
                raise AuthError("Invalid token key ID")

            return jwt.decode(token, public_key, algorithms=["RS256"], audience=self.audience, issuer=self.issuer, options=options)
        except jwt.ExpiredSignatureError as e:
            raise AuthError("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise AuthError("Invalid token") from e


class SessionResolver:
    """Reads the caller's identity from the session cookie or bearer token."""

    def __init__(
        self,
        secret: Optional[str],
        admin_usernames: List[str],
        cookie_name: str = "blockhaven_session",
        max_age_seconds: int = 7 * 24 * 60 * 60,
        provider_validator: Optional[JwtValidator] = None,
    ):
        self.secret = secret
        self.admin_usernames = [u.lower() for u in admin_usernames]
        self.cookie_name = cookie_name
        self.max_age_seconds = max_age_seconds
        self.provider_validator = provider_validator

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionResolver":
        return cls(
            secret=settings.AUTH_SECRET,
            admin_usernames=settings.admin_usernames,
            cookie_name=settings.SESSION_COOKIE_NAME,
            max_age_seconds=settings.SESSION_MAX_AGE_SECONDS,
            provider_validator=JwtValidator(
                jwks_url=settings.AUTH_JWKS_URL,
                issuer=settings.AUTH_ISSUER,
                audience=settings.AUTH_AUDIENCE,
                secret=settings.AUTH_SECRET,
            ),
        )

    def is_authorized(self, username: Optional[str]) -> bool:
        return bool(username) and username.lower() in self.admin_usernames

    def _extract_token(self, request: Request) -> Optional[str]:
        token = request.cookies.get(self.cookie_name)
        if token:
            return token
        authorization = request.headers.get("Authorization", "")
        if authorization.startswith("Bearer "):
            return authorization[7:]
        return None

    async def resolve(self, request: Request) -> Optional[Identity]:
        # No secret configured means auth is disabled: nobody has a session
        if not self.secret:
            return None

        token = self._extract_token(request)
        if not token:
            return None

        try:
            claims = jwt.decode(token, self.secret, algorithms=["HS256"], issuer=SESSION_ISSUER)
        except jwt.InvalidTokenError as e:
            logger.warning(f"Session check failed: {e}")
            return None

        username = claims.get("githubUsername")
        if not self.is_authorized(username):
            logger.warning(f"Session for {username} rejected: not in admin allowlist")
            return None

        return Identity(
            user_id=claims.get("sub") or username,
            username=username,
            email=claims.get("email"),
            expires_at=claims.get("exp"),
        )

    def identity_from_provider_token(self, token: str) -> Identity:
        """Verify a provider-issued token. Raises AuthError/ForbiddenError."""
        if not self.secret or self.provider_validator is None:
            raise AuthError("Authentication is not configured")

        claims = self.provider_validator.validate_token(token)
        username = (claims.get("login") or claims.get("preferred_username") or "").lower()
        if not username:
            raise AuthError("No GitHub username in profile")
        if not self.is_authorized(username):
            raise ForbiddenError(f"User {username} is not an authorized admin")

        return Identity(
            user_id=str(claims.get("sub") or username),
            username=username,
            email=claims.get("email"),
        )

    def issue_session(self, identity: Identity, now: Optional[int] = None) -> str:
        if not self.secret:
            raise AuthError("Authentication is not configured")
        issued_at = int(time.time()) if now is None else now
        claims = {
            "iss": SESSION_ISSUER,
            "sub": identity.user_id,
            "githubUsername": identity.username,
            "iat": issued_at,
            "exp": issued_at + self.max_age_seconds,
        }
        if identity.email:
            claims["email"] = identity.email
        return jwt.encode(claims, self.secret, algorithm="HS256")
