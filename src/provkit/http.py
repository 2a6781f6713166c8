"""Resilient outbound HTTP call layer.

Every platform adapter issues its requests through ``ResilientHttpClient``.
A call first goes out on the session's cached cookie-bearing client. If the
platform answers with a status from the retry set (by default 401, 403,
404, 409 and 500), the cached client is dropped, the session cookies are
cleared, and the call is repeated exactly once on a fresh client with Basic
credentials. Whatever that second attempt returns is final.

Example::

    client = ResilientHttpClient(clients, identity)
    projects = client.call(
        CallSpec(f"{base}/rest/api/2/project", returns=ReturnShape.list_of(Project))
    )
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Any, TypeVar

import requests

from provkit.calls import (
    JSON_CONTENT_TYPE,
    CallSpec,
    HttpVerb,
    ReturnShape,
    decode_body,
    encode_body,
)
from provkit.clients import CachedClient, ClientSessionCache
from provkit.config import DEFAULT_RETRY_STATUS_CODES
from provkit.credentials import CredentialResolver, Credentials, IdentityProvider
from provkit.exceptions import (
    HttpStatusError,
    LoginError,
    MissingCredentialsError,
    TransportError,
)
from provkit.logging import get_logger

LOG = get_logger(__name__)

T = TypeVar("T")

# Response bodies are cut to this many characters in debug logs.
_LOG_BODY_LIMIT = 500


def _truncate(text: str) -> str:
    if len(text) <= _LOG_BODY_LIMIT:
        return text
    return text[:_LOG_BODY_LIMIT] + f"... ({len(text)} chars)"


class ResilientHttpClient:
    """Issue calls on behalf of platform adapters with one direct-auth retry."""

    def __init__(
        self,
        clients: ClientSessionCache,
        identity: IdentityProvider,
        *,
        retry_status_codes: Collection[int] = DEFAULT_RETRY_STATUS_CODES,
        technical_credentials: Credentials | None = None,
        csrf_header: tuple[str, str] | None = ("X-Atlassian-Token", "no-check"),
        login_fields: tuple[str, str] = ("j_username", "j_password"),
        login_failure_marker: str = "Invalid username and password",
    ) -> None:
        """Initialize a ResilientHttpClient.

        Args:
            clients: Client cache of the session this client works for.
            identity: Source of the session token and ambient credentials.
            retry_status_codes: Statuses that trigger the direct-auth retry.
            technical_credentials: Service account used for direct auth
                instead of the logged-in user.
            csrf_header: (name, value) of the anti-CSRF bypass header sent
                with every request, or None to omit it.
            login_fields: Form field names for username and password.
            login_failure_marker: Body text that marks a failed form login.
        """
        self.clients = clients
        self.identity = identity
        self.retry_status_codes = frozenset(retry_status_codes)
        self.credentials = CredentialResolver(identity, technical_credentials)
        self._csrf_header = csrf_header
        self._login_fields = login_fields
        self._login_failure_marker = login_failure_marker

    @property
    def session_token(self) -> str | None:
        """Token of the current session, used as the client cache key."""
        return self.identity.get_token()

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._csrf_header is not None:
            name, value = self._csrf_header
            headers[name] = value
        if has_body:
            headers["Content-Type"] = JSON_CONTENT_TYPE
        return headers

    def _send(
        self,
        client: CachedClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> requests.Response:
        try:
            return client.request(method, url, **kwargs)
        except requests.exceptions.Timeout as exc:
            LOG.warning("http_timeout", method=method, url=url, error=str(exc))
            raise TransportError(method, url, f"timed out: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            LOG.warning("http_transport_failed", method=method, url=url, error=str(exc))
            raise TransportError(method, url, str(exc)) from exc

    def _attempt(self, spec: CallSpec[Any]) -> requests.Response:
        """Send one attempt of ``spec`` and return the response, whatever its status."""
        encoded = encode_body(spec.body)
        has_body = spec.verb.sends_body and encoded.data is not None
        kwargs: dict[str, Any] = {"headers": self._headers(has_body)}
        if encoded.params:
            kwargs["params"] = encoded.params
        if has_body:
            kwargs["data"] = encoded.data.encode("utf-8")  # type: ignore[union-attr]

        token = self.session_token
        if spec.direct_auth:
            credentials = self.credentials.resolve(spec.credentials)
            kwargs["auth"] = credentials.basic_auth()
            client = self.clients.get_fresh(token)
            LOG.debug(
                "http_call",
                method=spec.verb.value,
                url=spec.url,
                direct_auth=True,
                user=credentials.username,
            )
            try:
                response = self._send(client, spec.verb.value, spec.url, **kwargs)
            finally:
                client.close()
        else:
            client = self.clients.get(token)
            LOG.debug("http_call", method=spec.verb.value, url=spec.url, direct_auth=False)
            response = self._send(client, spec.verb.value, spec.url, **kwargs)

        LOG.debug(
            "http_response",
            method=spec.verb.value,
            url=spec.url,
            status=response.status_code,
            body=_truncate(response.text) if response.text else "",
        )
        return response

    def execute(self, spec: CallSpec[Any]) -> requests.Response:
        """Run ``spec`` with the retry policy and return the final response.

        Raises:
            HttpStatusError: If the final response is not 2xx.
            TransportError: If a request fails without a response.
            MissingCredentialsError: If direct auth has no credentials. On a
                retry it is chained to the ``HttpStatusError`` of the first
                response.
        """
        response = self._attempt(spec)
        status = response.status_code
        if not spec.direct_auth and status in self.retry_status_codes:
            LOG.info(
                "http_retry_direct_auth",
                method=spec.verb.value,
                url=spec.url,
                status=status,
            )
            first = HttpStatusError(status, response.text, spec.verb.value, spec.url)
            try:
                response = self._attempt(spec.with_direct_auth())
            except MissingCredentialsError as exc:
                raise exc from first

        if not 200 <= response.status_code < 300:
            raise HttpStatusError(
                response.status_code, response.text, spec.verb.value, spec.url
            )
        return response

    def call(self, spec: CallSpec[T]) -> T:
        """Perform a call and decode the result per ``spec.returns``.

        Args:
            spec: The call to perform.

        Returns:
            The decoded response body.

        Raises:
            HttpStatusError: If the final response is not 2xx.
            TransportError: If a request fails without a response.
            ResponseDecodeError: If the body does not match the return shape.
        """
        response = self.execute(spec)
        return decode_body(response.text, spec.returns, spec.url)

    def get(self, url: str, returns: ReturnShape[T], *, params: dict[str, str] | None = None) -> T:
        """Shortcut for a GET call with optional query parameters."""
        return self.call(CallSpec(url, HttpVerb.GET, body=params, returns=returns))

    def establish_session(self, url: str) -> None:
        """Send a HEAD probe so the session's cookies get established.

        Follows the same retry policy as ``call``.
        """
        self.execute(CallSpec(url, HttpVerb.HEAD))
        LOG.info("session_established", url=url)

    def form_login(self, url: str, credentials: Credentials | None = None) -> None:
        """Authenticate with a classic form POST on the default client.

        Cookies set by the login response land in the session cookie jar.

        Args:
            url: Login form target.
            credentials: Credentials to post; ambient ones when omitted.

        Raises:
            LoginError: On a non-2xx response, or a 2xx body containing the
                failure marker.
            TransportError: If the request fails without a response.
        """
        resolved = self.credentials.resolve(credentials)
        username_field, password_field = self._login_fields
        form = {username_field: resolved.username, password_field: resolved.password}
        client = self.clients.get(None)
        response = self._send(client, "POST", url, data=form)
        body = response.text or ""
        if not 200 <= response.status_code < 300 or self._login_failure_marker in body:
            LOG.warning(
                "form_login_failed",
                url=url,
                user=resolved.username,
                status=response.status_code,
            )
            raise LoginError(url, response.status_code, resolved.username)
        LOG.info("form_login_succeeded", url=url, user=resolved.username)

    def evict(self, token: str | None) -> bool:
        """Drop the cached client for a session token."""
        return self.clients.evict(token)
