from typing import Optional, Protocol

import requests
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import schemas
from .config import Settings, settings
from .logging_utils import log_warning

bearer_scheme = HTTPBearer(auto_error=False)


class IdentityError(Exception):
    """The bearer token does not identify a user."""


class IdentityResolver(Protocol):
    def resolve(self, access_token: str) -> str:
        """Return the caller's user id or raise IdentityError."""


class RemoteIdentityResolver:
    """Asks the auth service which user an access token belongs to."""

    def __init__(self, base_url: str, api_key: str, *, timeout: float = 10.0):
        self.user_url = f"{base_url.rstrip('/')}/auth/v1/user"
        self.api_key = api_key
        self.timeout = timeout

    def resolve(self, access_token: str) -> str:
        try:
            resp = requests.get(
                self.user_url,
                headers={"Authorization": f"Bearer {access_token}", "apikey": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log_warning("auth_user_lookup_failed", error=str(exc))
            raise IdentityError("Invalid token") from exc
        if not resp.ok:
            log_warning("auth_user_lookup_rejected", status=resp.status_code)
            raise IdentityError("Invalid token")
        try:
            user_id = resp.json().get("id")
        except ValueError:
            user_id = None
        if not user_id:
            raise IdentityError("Invalid token")
        return str(user_id)


class JwtIdentityResolver:
    """Verifies HS256 access tokens locally with the project's JWT secret."""

    def __init__(self, secret: str, *, audience: Optional[str] = None, algorithm: str = "HS256"):
        self.secret = secret
        self.audience = audience
        self.algorithm = algorithm

    def resolve(self, access_token: str) -> str:
        try:
            payload = jwt.decode(
                access_token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except ExpiredSignatureError:
            raise IdentityError("Token expired")
        except JWTError:
            raise IdentityError("Invalid token")
        user_id = payload.get("sub")
        if not user_id:
            raise IdentityError("Invalid token")
        return str(user_id)


def build_identity_resolver(config: Settings) -> IdentityResolver:
    if config.identity_mode == "jwt":
        if not config.supabase_jwt_secret:
            raise RuntimeError("SUPABASE_JWT_SECRET is required when IDENTITY_MODE=jwt")
        return JwtIdentityResolver(config.supabase_jwt_secret, audience=config.supabase_jwt_audience or None)
    if not config.supabase_url or not config.supabase_service_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required to validate access tokens")
    return RemoteIdentityResolver(config.supabase_url, config.supabase_service_key)


def get_identity_resolver() -> IdentityResolver:
    return build_identity_resolver(settings)


def get_bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def resolve_caller(resolver: IdentityResolver, access_token: Optional[str]) -> str:
    if not access_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return resolver.resolve(access_token)
    except IdentityError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc) or "Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_tribe_owner(tribe: Optional[schemas.TribeSummary], user_id: str) -> schemas.TribeSummary:
    if tribe is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tribe not found")
    if tribe.owner != user_id:
        log_warning("tribe_owner_mismatch", tribe_id=tribe.id, owner=tribe.owner, user_id=user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    return tribe
