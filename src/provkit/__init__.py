"""provkit - resilient external calls for project provisioning.

Provisioning a project touches several independent platforms (issue
tracker, wiki, source hosting, job execution, container namespaces). This
package provides the pieces those platform adapters share:

- A resilient HTTP call layer with per-session cookie clients and a single
  fallback to Basic credentials on authorization-class failures
- Per-session cookie jars with SSO cookie injection
- Duplicate-project precondition checks that report conflicts as data
- A per-user cache of identity-provider group memberships

Example:
    >>> from provkit import CallSpec, ProvisioningSession, ReturnShape
    >>> with ProvisioningSession.open("alice", password, token=sso_token) as session:
    ...     projects = session.http.call(
    ...         CallSpec("https://jira.example.com/rest/api/2/project",
    ...                  returns=ReturnShape.json())
    ...     )
"""

from provkit.calls import CallSpec, HttpVerb, ReturnShape
from provkit.clients import CachedClient, ClientSessionCache
from provkit.config import ProvkitSettings, get_settings
from provkit.cookies import SessionCookieJar
from provkit.credentials import CredentialHolder, Credentials, IdentityProvider
from provkit.exceptions import (
    HttpStatusError,
    LoginError,
    MissingCredentialsError,
    PreconditionEvaluationError,
    ProvkitError,
    ResponseDecodeError,
    TransportError,
)
from provkit.http import ResilientHttpClient
from provkit.memberships import MembershipCache, MembershipCacheEntry
from provkit.preconditions import (
    FailureCode,
    PreconditionChecker,
    PreconditionFailure,
    check_all,
)
from provkit.session import ProvisioningSession

__version__ = "0.4.0"

__all__ = [
    # Version
    "__version__",
    # Call layer
    "CallSpec",
    "HttpVerb",
    "ReturnShape",
    "ResilientHttpClient",
    "CachedClient",
    "ClientSessionCache",
    "SessionCookieJar",
    # Sessions and credentials
    "ProvisioningSession",
    "CredentialHolder",
    "Credentials",
    "IdentityProvider",
    # Preconditions
    "FailureCode",
    "PreconditionChecker",
    "PreconditionFailure",
    "check_all",
    # Memberships
    "MembershipCache",
    "MembershipCacheEntry",
    # Configuration
    "ProvkitSettings",
    "get_settings",
    # Exceptions
    "ProvkitError",
    "TransportError",
    "HttpStatusError",
    "LoginError",
    "MissingCredentialsError",
    "ResponseDecodeError",
    "PreconditionEvaluationError",
]
