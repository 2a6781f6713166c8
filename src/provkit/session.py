"""Explicit per-user session context.

A ``ProvisioningSession`` bundles everything that belongs to one logged-in
user: the credential holder, the cookie jar, the client cache and the
resilient HTTP client built over them. Workflows receive the session object
and pass it to platform adapters; nothing is looked up from ambient
thread- or request-scoped state.

Example::

    with ProvisioningSession.open("alice", password, token=sso_token) as session:
        names = list_namespaces(session.http, "https://api.ocp.example.com")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from requests.adapters import BaseAdapter

from provkit.clients import ClientSessionCache
from provkit.config import ProvkitSettings, get_settings
from provkit.cookies import SessionCookieJar
from provkit.credentials import CredentialHolder, Credentials
from provkit.http import ResilientHttpClient
from provkit.logging import get_logger

LOG = get_logger(__name__)


def technical_credentials(settings: ProvkitSettings) -> Credentials | None:
    """Return the configured technical user, or None when it is not fully set."""
    if not settings.uses_technical_user or settings.technical_password is None:
        return None
    return Credentials(
        settings.technical_user or "", settings.technical_password.get_secret_value()
    )


def build_http_client(
    holder: CredentialHolder,
    settings: ProvkitSettings,
    *,
    transport: BaseAdapter | None = None,
) -> ResilientHttpClient:
    """Wire a cookie jar, client cache and HTTP client from settings.

    Args:
        holder: Credential holder of the session.
        settings: Settings providing timeouts, cookie and header config.
        transport: Optional requests adapter mounted on every client.

    Returns:
        A ResilientHttpClient for the session.
    """
    jar = SessionCookieJar(settings.sso_cookie_name, settings.sso_domain)
    clients = ClientSessionCache(
        jar,
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        trust_all_certificates=settings.trust_all_certificates,
        transport=transport,
    )
    technical = technical_credentials(settings)
    if technical is not None:
        LOG.info("technical_user_configured", user=technical.username)
    return ResilientHttpClient(
        clients,
        holder,
        retry_status_codes=settings.retry_status_codes,
        technical_credentials=technical,
        csrf_header=(settings.csrf_header_name, settings.csrf_header_value),
        login_fields=(settings.login_username_field, settings.login_password_field),
        login_failure_marker=settings.login_failure_marker,
    )


@dataclass
class ProvisioningSession:
    """Everything that belongs to one logical user session."""

    credentials: CredentialHolder
    http: ResilientHttpClient

    @property
    def cookie_jar(self) -> SessionCookieJar:
        return self.http.clients.cookie_jar

    @property
    def clients(self) -> ClientSessionCache:
        return self.http.clients

    @classmethod
    def open(
        cls,
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
        *,
        settings: ProvkitSettings | None = None,
        transport: BaseAdapter | None = None,
    ) -> ProvisioningSession:
        """Create a session for a user.

        Args:
            username: Logged-in user name.
            password: The user's password, used for direct-auth retries.
            token: SSO token from the identity provider, if any.
            settings: Settings to use; the global settings when omitted.
            transport: Optional requests adapter mounted on every client.

        Returns:
            A new ProvisioningSession.
        """
        settings = settings or get_settings()
        holder = CredentialHolder(username=username, password=password, token=token)
        session = cls(credentials=holder, http=build_http_client(holder, settings, transport=transport))
        LOG.debug("session_opened", user=username, sso=token is not None)
        return session

    def close(self) -> None:
        """End the session: drop clients, cookies and credentials."""
        user = self.credentials.get_user_name()
        self.clients.clear()
        self.cookie_jar.clear()
        self.credentials.clear()
        LOG.debug("session_closed", user=user)

    def __enter__(self) -> ProvisioningSession:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
