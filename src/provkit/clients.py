"""Session-token keyed cache of configured HTTP clients.

Each logical session owns one ``ClientSessionCache`` bound to its
``SessionCookieJar``. A client is a ``requests.Session`` whose cookie jar is
the shared session jar, plus the client-wide connect/read timeouts.

Thread Safety:
    The token map is guarded by a lock. Two threads asking for the same
    missing token may both build a client, but only one is inserted; the
    other is closed and both callers receive the inserted one. The SSO cookie
    is injected under the same lock, before the client is inserted, so no
    caller ever sees a token client whose cookie is missing.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.adapters import BaseAdapter

from provkit.cookies import SessionCookieJar
from provkit.logging import get_logger

LOG = get_logger(__name__)

# Cache key used for the unauthenticated/default client.
_DEFAULT_KEY = "default"


def session_key(token: str | None) -> str:
    """Return the cache index for a session token.

    The raw token is a secret; only its SHA-256 digest is kept as a map key
    and shown in logs.
    """
    if token is None:
        return _DEFAULT_KEY
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


@dataclass
class CachedClient:
    """A configured HTTP transport bound to one session token."""

    session_key: str
    http: requests.Session
    connect_timeout: float
    read_timeout: float
    cached: bool = field(default=True)

    @property
    def timeout(self) -> tuple[float, float]:
        """(connect, read) tuple in the form requests expects."""
        return (self.connect_timeout, self.read_timeout)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send one request with the client-wide timeouts."""
        kwargs.setdefault("timeout", self.timeout)
        return self.http.request(method, url, **kwargs)

    def close(self) -> None:
        self.http.close()


class ClientSessionCache:
    """Map session tokens to HTTP clients, creating them lazily."""

    def __init__(
        self,
        cookie_jar: SessionCookieJar,
        *,
        connect_timeout: float = 30,
        read_timeout: float = 60,
        trust_all_certificates: bool = False,
        transport: BaseAdapter | None = None,
    ) -> None:
        """Initialize a ClientSessionCache.

        Args:
            cookie_jar: Jar shared by every client of this session.
            connect_timeout: Connect timeout in seconds for every client.
            read_timeout: Read timeout in seconds for every client.
            trust_all_certificates: Skip TLS verification. Development only.
            transport: Optional requests adapter mounted for http:// and
                https:// on every client built by this cache.
        """
        self.cookie_jar = cookie_jar
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.trust_all_certificates = trust_all_certificates
        self._transport = transport
        self._clients: dict[str, CachedClient] = {}
        self._lock = threading.Lock()

        if trust_all_certificates:
            LOG.warning(
                "trust_all_certificates_enabled",
                hint="Only set this in a development environment",
            )

    def _build(self, key: str, *, cached: bool) -> CachedClient:
        http = requests.Session()
        http.cookies = self.cookie_jar
        if self.trust_all_certificates:
            http.verify = False
        if self._transport is not None:
            http.mount("http://", self._transport)
            http.mount("https://", self._transport)
        return CachedClient(
            session_key=key,
            http=http,
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            cached=cached,
        )

    def get(self, token: str | None) -> CachedClient:
        """Return the client for ``token``, creating it on first use.

        Creating a client for a non-``None`` token injects the SSO cookie
        carrying that token into the shared jar.

        Args:
            token: SSO session token, or ``None`` for the default client.

        Returns:
            The cached client for the token.

        Raises:
            ValueError: If the SSO cookie cannot be built. Nothing is cached.
        """
        key = session_key(token)
        with self._lock:
            client = self._clients.get(key)
        if client is not None:
            return client

        candidate = self._build(key, cached=True)
        with self._lock:
            winner = self._clients.get(key)
            if winner is None:
                # The SSO cookie must be in the jar before the client is visible.
                try:
                    if token is not None:
                        self.cookie_jar.add_external_cookie(token)
                except ValueError:
                    candidate.close()
                    raise
                self._clients[key] = candidate
        if winner is not None:
            candidate.close()
            return winner

        LOG.debug("client_created", session_key=key)
        return candidate

    def get_fresh(self, token: str | None) -> CachedClient:
        """Return a brand-new client that is never cached.

        Evicts any cached client for ``token`` and clears the shared cookie
        jar first, so no stale session state survives into the new client.

        Args:
            token: SSO session token whose cached client is discarded.

        Returns:
            A new, uncached client.
        """
        self.evict(token)
        self.cookie_jar.clear()
        client = self._build(session_key(token), cached=False)
        LOG.debug("fresh_client_created", session_key=client.session_key)
        return client

    def evict(self, token: str | None) -> bool:
        """Drop the cached client for ``token``.

        Returns:
            True if a client was removed.
        """
        key = session_key(token)
        with self._lock:
            client = self._clients.pop(key, None)
        if client is None:
            return False
        client.close()
        LOG.debug("client_evicted", session_key=key)
        return True

    def clear(self) -> None:
        """Evict and close every cached client."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()

    def __contains__(self, token: object) -> bool:
        if token is not None and not isinstance(token, str):
            return False
        with self._lock:
            return session_key(token) in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
