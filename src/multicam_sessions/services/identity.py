"""Caller authentication."""

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from multicam_sessions.domain.errors import UnauthenticatedError


class IdentityProvider(Protocol):
    """Resolves access tokens to user identities."""

    def get_user_id(self, access_token: str) -> UUID | None:
        """Return the user id for a valid token, or None."""


@dataclass
class AuthService:
    """Authenticates callers from bearer tokens."""

    identity_provider: IdentityProvider

    def authenticate(self, authorization: str | None) -> UUID:
        """Return the caller's user id from an Authorization header value."""
        if not authorization:
            raise UnauthenticatedError("No authorization header")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthenticatedError()
        return self.authenticate_token(token.strip())

    def authenticate_token(self, token: str | None) -> UUID:
        """Return the caller's user id from a raw access token."""
        if not token:
            raise UnauthenticatedError()
        user_id = self.identity_provider.get_user_id(token)
        if user_id is None:
            raise UnauthenticatedError()
        return user_id
