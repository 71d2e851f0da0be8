"""GitHub REST client used by modules to comment on and assign issues.

Modules depend on the :class:`PlatformClient` protocol; the application wires
in :class:`GitHubPlatformClient`. Errors raise :class:`PlatformAPIError` and
are treated as non-fatal by callers.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import httpx

from otto.common.slug import parse_repo_slug
from otto.logging import get_logger, log_info

__all__ = [
    "GitHubPlatformClient",
    "GitHubRESTConfig",
    "PlatformAPIError",
    "PlatformClient",
]

logger = get_logger(__name__)

_HTTP_ERROR_STATUS_THRESHOLD = 400


class PlatformClient(typ.Protocol):
    """Capabilities modules use against a repository issue."""

    async def post_comment(self, repo: str, issue_number: int, body: str) -> None:
        """Post *body* as a comment on ``repo#issue_number``."""
        ...

    async def assign_issue(
        self, repo: str, issue_number: int, assignees: typ.Sequence[str]
    ) -> None:
        """Add *assignees* to ``repo#issue_number``."""
        ...


class PlatformAPIError(RuntimeError):
    """Raised when the platform API rejects or fails a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, method: str, path: str, status_code: int) -> PlatformAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(
            f"GitHub REST {method} {path} -> HTTP {status_code}",
            status_code=status_code,
        )

    @classmethod
    def transport_error(
        cls, method: str, path: str, exc: Exception
    ) -> PlatformAPIError:
        """Return an error for network-level failures."""
        return cls(f"GitHub REST {method} {path} failed: {exc}")


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubRESTConfig:
    """Configuration for the GitHub REST API client."""

    token: str | None = None
    base_url: str = "https://api.github.com"
    timeout_s: float = 10.0
    user_agent: str = "otto/0.1"


class GitHubPlatformClient:
    """GitHub REST implementation of :class:`PlatformClient`."""

    def __init__(
        self,
        config: GitHubRESTConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client, creating an owned HTTP client if none given."""
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": config.user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_s,
            headers=headers,
        )
        log_info(
            logger,
            "GitHub client initialized authenticated=%s",
            bool(config.token),
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def post_comment(self, repo: str, issue_number: int, body: str) -> None:
        """Post *body* as a comment on ``repo#issue_number``."""
        owner, name = parse_repo_slug(repo)
        await self._post(
            f"/repos/{owner}/{name}/issues/{issue_number}/comments",
            {"body": body},
        )

    async def assign_issue(
        self, repo: str, issue_number: int, assignees: typ.Sequence[str]
    ) -> None:
        """Add *assignees* to ``repo#issue_number``."""
        owner, name = parse_repo_slug(repo)
        await self._post(
            f"/repos/{owner}/{name}/issues/{issue_number}/assignees",
            {"assignees": list(assignees)},
        )

    async def _post(self, path: str, payload: dict[str, typ.Any]) -> None:
        url = f"{self._config.base_url.rstrip('/')}{path}"
        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise PlatformAPIError.transport_error("POST", path, exc) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise PlatformAPIError.http_error("POST", path, response.status_code)
