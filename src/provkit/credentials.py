"""Credentials and the per-session credential holder.

``Credentials`` is an immutable username/password pair built fresh for each
direct-auth attempt. ``CredentialHolder`` is the mutable per-session holder
filled in by the identity layer after login; it doubles as the
``IdentityProvider`` consumed by the HTTP layer.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from requests.auth import HTTPBasicAuth

from provkit.exceptions import MissingCredentialsError


@runtime_checkable
class IdentityProvider(Protocol):
    """Source of the ambient identity for the current session."""

    def get_user_name(self) -> str | None: ...

    def get_user_password(self) -> str | None: ...

    def get_token(self) -> str | None: ...


@dataclass(frozen=True)
class Credentials:
    """A username/password pair. The password never appears in ``repr``."""

    username: str
    password: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.username or not self.username.strip():
            raise MissingCredentialsError("Credentials.username must be non-empty")
        if not self.password:
            raise MissingCredentialsError(f"No password available for user '{self.username}'")

    def basic_auth(self) -> HTTPBasicAuth:
        """Return a requests auth object adding a Basic ``Authorization`` header."""
        return HTTPBasicAuth(self.username, self.password)


class CredentialHolder:
    """Mutable holder of {username, password, token} for one logical session.

    Safe to read and update from several threads working for the same
    session.
    """

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._username = username
        self._password = password
        self._token = token

    def get_user_name(self) -> str | None:
        with self._lock:
            return self._username

    def get_user_password(self) -> str | None:
        with self._lock:
            return self._password

    def get_token(self) -> str | None:
        with self._lock:
            return self._token

    def update(
        self,
        *,
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
    ) -> None:
        """Set any of the held values; ``None`` arguments leave a value unchanged."""
        with self._lock:
            if username is not None:
                self._username = username
            if password is not None:
                self._password = password
            if token is not None:
                self._token = token

    def set_token(self, token: str | None) -> None:
        """Replace the session token, ``None`` included."""
        with self._lock:
            self._token = token

    def clear(self) -> None:
        """Forget username, password and token."""
        with self._lock:
            self._username = None
            self._password = None
            self._token = None

    def __repr__(self) -> str:
        with self._lock:
            has_token = self._token is not None
            return f"CredentialHolder(user={self._username!r}, token={'set' if has_token else None})"


class CredentialResolver:
    """Pick the credentials used for direct authentication.

    A configured technical user wins over the logged-in user, so that
    platform adapters can act with a service account independently of who
    triggered the workflow.
    """

    def __init__(self, identity: IdentityProvider, technical: Credentials | None = None) -> None:
        self._identity = identity
        self._technical = technical

    @property
    def uses_technical_user(self) -> bool:
        return self._technical is not None

    def resolve(self, explicit: Credentials | None = None) -> Credentials:
        """Return the credentials for a direct-auth attempt.

        Args:
            explicit: Credentials supplied by the caller for this call.

        Returns:
            ``explicit`` if given, else the technical user, else the
            identity provider's current user.

        Raises:
            MissingCredentialsError: If no usable username/password is known.
        """
        if explicit is not None:
            return explicit
        if self._technical is not None:
            return self._technical
        username = self._identity.get_user_name()
        if not username:
            raise MissingCredentialsError("No user is logged in for direct authentication")
        return Credentials(username, self._identity.get_user_password() or "")
