# mindmate/infra/auth.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from supabase import Client

from mindmate.core.config import Settings
from mindmate.domain.models import UserIdentity
from mindmate.exceptions import AuthError
from mindmate.infra.supabase_repo import create_supabase_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user: UserIdentity


def _identity(user: Any) -> UserIdentity:
    metadata = getattr(user, "user_metadata", None) or {}
    return UserIdentity(
        id=str(user.id),
        email=getattr(user, "email", None),
        name=metadata.get("name"),
    )


class SupabaseAuthGateway:
    """
    Supabase Auth behind a small interface.

    Sign-in and sign-up run on a fresh client each time so one user's
    session never sticks to the client shared by the whole process.
    """

    def __init__(self, client_factory: Callable[[], Client]):
        self._client_factory = client_factory
        self._client: Optional[Client] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseAuthGateway":
        return cls(lambda: create_supabase_client(settings))

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def sign_up(self, email: str, password: str, name: str) -> UserIdentity:
        try:
            response = self._client_factory().auth.sign_up(
                {"email": email, "password": password, "options": {"data": {"name": name}}}
            )
        except Exception as e:
            raise AuthError(f"Sign-up failed: {e}") from e

        if response.user is None:
            raise AuthError("Sign-up returned no user")

        logger.info("New account created: user_id=%s", response.user.id)
        return _identity(response.user)

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = self._client_factory().auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise AuthError(f"Login failed: {e}") from e

        if response.session is None or response.user is None:
            raise AuthError("Login returned no session")

        return AuthSession(access_token=response.session.access_token, user=_identity(response.user))

    def sign_out(self, access_token: str) -> None:
        try:
            self.client.auth.admin.sign_out(access_token)
        except Exception as e:
            raise AuthError(f"Logout failed: {e}") from e

    def get_user(self, access_token: str) -> Optional[UserIdentity]:
        """None for an unknown/expired token; the HTTP layer turns that into 401."""
        if not access_token:
            return None
        try:
            response = self.client.auth.get_user(access_token)
        except Exception as e:
            logger.info("Token lookup rejected: %s", e)
            return None

        if response is None or response.user is None:
            return None
        return _identity(response.user)
