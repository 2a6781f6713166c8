"""Per-session cookie jar with SSO cookie injection.

``SessionCookieJar`` is a ``RequestsCookieJar`` so it can be assigned to
``requests.Session.cookies`` directly. Two things differ from a regular jar:

- Cookies set by a response *replace* the whole jar instead of being merged
  in. The platforms behind the SSO rotate their session cookies wholesale,
  and keeping stale ones around makes the next call fail the same way.
- The SSO cookie is synthesized from a raw token handed over by the
  identity provider rather than parsed from a ``Set-Cookie`` header, since
  the SSO domain and the platform domains can differ.

One jar belongs to one logical user session. It is shared by every client
built for that session and is safe to use from several threads.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator
from http.cookiejar import Cookie
from typing import Any

from requests.cookies import RequestsCookieJar, create_cookie

from provkit.logging import get_logger

LOG = get_logger(__name__)


class SessionCookieJar(RequestsCookieJar):
    """Cookie jar for one logical session with replace-on-save semantics."""

    def __init__(self, sso_cookie_name: str = "crowd.token_key", sso_domain: str | None = None):
        """Initialize a SessionCookieJar.

        Args:
            sso_cookie_name: Name of the synthesized SSO cookie.
            sso_domain: Domain of the synthesized SSO cookie. Required before
                ``add_external_cookie`` can be used.
        """
        super().__init__()
        self.sso_cookie_name = sso_cookie_name
        self.sso_domain = sso_domain

    def save(self, url: str, cookies: Iterable[Cookie]) -> None:
        """Replace every stored cookie with ``cookies``.

        Args:
            url: URL of the response that produced the cookies.
            cookies: The complete new cookie set.
        """
        cookies = list(cookies)
        with self._cookies_lock:
            super().clear()
            for cookie in cookies:
                self.set_cookie(cookie)
        LOG.debug("cookies_saved", url=url, names=sorted(c.name for c in cookies))

    def load(self, url: str | None = None) -> list[Cookie]:
        """Return a snapshot copy of the stored cookies.

        The jar holds cookies for a single session, so every stored cookie
        is returned. Domain and path matching happen when requests builds
        the ``Cookie`` header.

        Args:
            url: URL the cookies are loaded for (informational).

        Returns:
            List of copied cookies; mutating them does not affect the jar.
        """
        with self._cookies_lock:
            return [copy.copy(cookie) for cookie in super().__iter__()]

    def add_external_cookie(self, value: str) -> Cookie:
        """Insert the SSO cookie built from a raw token value.

        Args:
            value: Token value obtained from the identity provider.

        Returns:
            The inserted cookie.

        Raises:
            ValueError: If the value is empty or no SSO domain is configured.
        """
        if not value:
            raise ValueError("SSO cookie value must be non-empty")
        if not self.sso_domain:
            raise ValueError("Cannot add SSO cookie: no SSO domain configured")
        domain = "." + self.sso_domain.lstrip(".")
        cookie = create_cookie(
            self.sso_cookie_name,
            value,
            domain=domain,
            path="/",
            rest={"HttpOnly": None},
        )
        self.set_cookie(cookie)
        LOG.debug("sso_cookie_added", name=self.sso_cookie_name, domain=domain)
        return cookie

    def clear(
        self,
        domain: str | None = None,
        path: str | None = None,
        name: str | None = None,
    ) -> None:
        """Remove cookies; without arguments, empty the jar."""
        with self._cookies_lock:
            super().clear(domain, path, name)

    def extract_cookies(self, response: Any, request: Any) -> None:
        """Store cookies set by a response, replacing the previous set.

        Called by requests after every response. Responses without
        ``Set-Cookie`` headers leave the jar untouched.
        """
        with self._cookies_lock:
            cookies = [
                cookie
                for cookie in self.make_cookies(response, request)
                if self._policy.set_ok(cookie, request)
            ]
        if cookies:
            self.save(request.get_full_url(), cookies)

    def __iter__(self) -> Iterator[Cookie]:
        return iter(self.load())

    def copy(self) -> SessionCookieJar:
        """Return an independent jar with the same configuration and cookies."""
        new_jar = SessionCookieJar(self.sso_cookie_name, self.sso_domain)
        new_jar.set_policy(self.get_policy())
        for cookie in self.load():
            new_jar.set_cookie(cookie)
        return new_jar
