# app/security.py - Identity verification against the hosted identity provider
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings
from .exceptions import AuthError, InternalError, ValidationError

security_logger = structlog.get_logger("security")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class VerifiedIdentity:
    """The caller as vouched for by the identity provider."""
    user_id: str
    email: Optional[str] = None
    verified: bool = True


class IdentityProvider:
    """Contract the API needs from an identity provider."""

    def verify(self, token: str) -> VerifiedIdentity:
        raise NotImplementedError

    def create_user(self, email: str, password: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def close(self) -> None:
        pass


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Identity provider returned {response.status_code}"
    if isinstance(body, dict):
        for field in ("msg", "message", "error_description", "error"):
            if body.get(field):
                return str(body[field])
    return f"Identity provider returned {response.status_code}"


class HostedIdentityProvider(IdentityProvider):
    """GoTrue-compatible auth service reached over HTTP.

    Access tokens are verified locally when the project's JWT secret is
    configured, otherwise by asking the service for the token's user.
    Account creation always goes through the admin API with the service key.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            if not self.settings.identity_provider_url:
                raise InternalError("Identity provider is not configured")
            self._client = httpx.Client(base_url=self.settings.identity_provider_url)
        return self._client

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        if self.settings.identity_service_key:
            headers["apikey"] = self.settings.identity_service_key
        bearer = bearer or self.settings.identity_service_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    def verify(self, token: str) -> VerifiedIdentity:
        if not token:
            raise AuthError("No access token provided")
        if self.settings.local_token_verification:
            identity = self._verify_locally(token)
        else:
            identity = self._verify_remotely(token)
        if not identity.verified:
            security_logger.info("identity_unconfirmed", user_id=identity.user_id)
            raise AuthError("Account email has not been confirmed")
        return identity

    def _verify_locally(self, token: str) -> VerifiedIdentity:
        try:
            payload = jwt.decode(
                token,
                self.settings.identity_jwt_secret,
                algorithms=[self.settings.identity_jwt_algorithm],
                audience=self.settings.identity_jwt_audience,
            )
        except JWTError as e:
            security_logger.info("token_rejected", reason=str(e))
            raise AuthError("Unauthorized") from e

        user_id = payload.get("sub")
        if not user_id:
            raise AuthError("Token missing user identifier")
        return VerifiedIdentity(user_id=user_id, email=payload.get("email"), verified=True)

    def _verify_remotely(self, token: str) -> VerifiedIdentity:
        try:
            response = self.client.get("/auth/v1/user", headers=self._headers(bearer=token))
        except httpx.HTTPError as e:
            security_logger.error("identity_provider_unreachable", error=str(e))
            raise InternalError("Identity provider unavailable") from e

        if response.status_code >= 500:
            security_logger.error("identity_provider_error", status=response.status_code)
            raise InternalError("Identity provider unavailable")
        if response.is_error:
            security_logger.info("token_rejected", status=response.status_code)
            raise AuthError("Unauthorized")

        user = response.json()
        if not user.get("id"):
            raise AuthError("Unauthorized")
        return VerifiedIdentity(
            user_id=user["id"],
            email=user.get("email"),
            verified=bool(user.get("email_confirmed_at") or user.get("confirmed_at")),
        )

    def create_user(self, email: str, password: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "email": email,
            "password": password,
            "user_metadata": metadata,
            # No mail server is configured, so accounts are confirmed on creation
            "email_confirm": True,
        }
        try:
            response = self.client.post("/auth/v1/admin/users", json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            security_logger.error("identity_provider_unreachable", error=str(e))
            raise InternalError("Identity provider unavailable") from e

        if response.status_code >= 500:
            security_logger.error("identity_provider_error", status=response.status_code)
            raise InternalError("Identity provider unavailable")
        if response.is_error:
            message = _error_message(response)
            security_logger.info("signup_rejected", email=email, reason=message)
            raise ValidationError(message)

        user = response.json()
        # Some deployments wrap the user object
        if isinstance(user, dict) and "user" in user and "id" not in user:
            user = user["user"]
        return user

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


# Dependencies for FastAPI
def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> VerifiedIdentity:
    """Resolve the bearer token to a verified identity or fail with 401."""
    if credentials is None or not credentials.credentials:
        raise AuthError("No access token provided")
    return provider.verify(credentials.credentials)
