"""Resource listings of the external platforms.

Thin adapters over ``ResilientHttpClient`` that produce the identifier sets
consumed by ``PreconditionChecker`` and the group lookup consumed by
``MembershipCache``. Response models ignore any field they do not declare.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from provkit.calls import ReturnShape
from provkit.exceptions import HttpStatusError
from provkit.http import ResilientHttpClient
from provkit.logging import get_logger
from provkit.memberships import GroupLookup
from provkit.preconditions import PreconditionChecker

LOG = get_logger(__name__)

NAMESPACES_PATH = "/apis/project.openshift.io/v1/projects"
SCM_REPOS_PATH = "/rest/api/1.0/repos"
GROUPS_PATH = "/rest/usermanagement/1/user/group/direct"

# Page size requested from the source hosting platform.
SCM_PAGE_SIZE = 1000


class _Metadata(BaseModel):
    name: str


class _Namespace(BaseModel):
    metadata: _Metadata


class _NamespaceList(BaseModel):
    items: list[_Namespace] = Field(default_factory=list)


class _ScmRepository(BaseModel):
    slug: str


class _ScmRepositoryPage(BaseModel):
    values: list[_ScmRepository] = Field(default_factory=list)
    is_last_page: bool = Field(default=True, alias="isLastPage")
    next_page_start: int | None = Field(default=None, alias="nextPageStart")


class _Group(BaseModel):
    name: str


class _GroupList(BaseModel):
    groups: list[_Group] = Field(default_factory=list)


def _join(api_url: str, path: str) -> str:
    return f"{api_url.rstrip('/')}{path}"


def list_namespaces(client: ResilientHttpClient, api_url: str) -> set[str]:
    """Return the names of all container-platform projects visible to the session."""
    listing = client.get(_join(api_url, NAMESPACES_PATH), ReturnShape.model(_NamespaceList))
    return {item.metadata.name for item in listing.items}


def list_scm_repositories(client: ResilientHttpClient, api_url: str) -> set[str]:
    """Return the slugs of all source-hosting repositories, following pagination."""
    url = _join(api_url, SCM_REPOS_PATH)
    slugs: set[str] = set()
    start = 0
    while True:
        page = client.get(
            url,
            ReturnShape.model(_ScmRepositoryPage),
            params={"start": str(start), "limit": str(SCM_PAGE_SIZE)},
        )
        slugs.update(repository.slug for repository in page.values)
        if page.is_last_page or page.next_page_start is None:
            return slugs
        start = page.next_page_start


def group_lookup(client: ResilientHttpClient, api_url: str) -> GroupLookup:
    """Build a ``MembershipCache`` lookup backed by the identity provider.

    The returned callable gives the user's direct group names, or None when
    the identity provider does not know the user.
    """
    url = _join(api_url, GROUPS_PATH)

    def lookup(username: str) -> list[str] | None:
        try:
            listing = client.get(url, ReturnShape.model(_GroupList), params={"username": username})
        except HttpStatusError as exc:
            if exc.status_code == 404:
                LOG.info("group_lookup_user_unknown", user=username)
                return None
            raise
        return [group.name for group in listing.groups]

    return lookup


def namespace_checker(client: ResilientHttpClient, api_url: str) -> PreconditionChecker:
    """Precondition checker against container-platform projects."""
    return PreconditionChecker("openshiftService", lambda: list_namespaces(client, api_url))


def scm_checker(client: ResilientHttpClient, api_url: str) -> PreconditionChecker:
    """Precondition checker against source-hosting repository slugs."""
    return PreconditionChecker("bitbucket", lambda: list_scm_repositories(client, api_url))
