"""Issue-tracker stage: GitHub REST client and fact collection.

Requests go through ``urllib.request`` with a bounded timeout and are routed
through :meth:`ErrorHandler.safe_network_operation`, so transient network
failures are retried and a flapping host trips its breaker. Client errors
(4xx) are answers, not failures, and are never retried.
"""

from __future__ import annotations

import json
import re
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from portfolio_monitor.config import GitHubConfig
from portfolio_monitor.exceptions import NetworkError
from portfolio_monitor.logging import get_logger
from portfolio_monitor.resilience import STRATEGY_CACHE, ErrorHandler
from portfolio_monitor.types import IssueTrackerFacts

logger = get_logger("issues")

MAX_PAGES = 100

_REPOSITORY_PATTERNS = (
    re.compile(r"git@github\.com:([^/]+)/([^/]+?)(?:\.git)?$"),
    re.compile(r"https?://github\.com/([^/]+)/([^/]+?)(?:\.git)?$"),
)


@dataclass(frozen=True)
class Repository:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class ApiResponse:
    status: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class RepositoryCheck:
    exists: bool
    accessible: bool
    error: str | None = None
    private: bool = False
    has_issues: bool = True


def parse_repository(remote_url: str | None) -> Repository | None:
    """Extract owner/repo from an SSH or HTTP(S) GitHub remote URL."""
    if not remote_url:
        return None
    text = remote_url.strip()
    for pattern in _REPOSITORY_PATTERNS:
        match = pattern.search(text)
        if match:
            return Repository(owner=match.group(1), repo=match.group(2))
    return None


def format_issue(issue: dict[str, Any]) -> dict[str, Any]:
    """Reduce an API issue payload to the fields the monitor keeps."""
    assignee = issue.get("assignee")
    milestone = issue.get("milestone")
    return {
        "id": issue.get("id"),
        "number": issue.get("number"),
        "title": issue.get("title"),
        "state": issue.get("state"),
        "labels": [label.get("name") for label in issue.get("labels", []) if isinstance(label, dict)],
        "assignee": assignee.get("login") if assignee else None,
        "assignees": [a.get("login") for a in issue.get("assignees", [])],
        "milestone": milestone.get("title") if milestone else None,
        "created_at": issue.get("created_at"),
        "updated_at": issue.get("updated_at"),
        "closed_at": issue.get("closed_at"),
        "html_url": issue.get("html_url"),
        "user": (issue.get("user") or {}).get("login"),
        "comments": issue.get("comments", 0),
        "is_pull_request": bool(issue.get("pull_request")),
    }


class IssueTrackerClient:
    """Minimal GitHub REST API client."""

    def __init__(
        self,
        config: GitHubConfig | None = None,
        error_handler: ErrorHandler | None = None,
        opener: Callable[..., Any] = urllib.request.urlopen,
    ) -> None:
        self.config = config or GitHubConfig()
        self.error_handler = error_handler or ErrorHandler()
        self._opener = opener
        self.rate_limit_remaining: int | None = None
        self.rate_limit_reset: int | None = None

    def _url(self, path: str, params: dict[str, Any] | None = None) -> str:
        url = f"{self.config.base_url.rstrip('/')}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    def _request(self, url: str) -> ApiResponse:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.config.user_agent,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        req = urllib.request.Request(url, headers=headers, method="GET")

        try:
            with self._opener(req, timeout=self.config.timeout_seconds) as resp:
                body = json.loads(resp.read().decode("utf-8"))
                return ApiResponse(status=resp.status, body=body, headers=dict(resp.headers.items()))
        except urllib.error.HTTPError as e:
            if e.code >= 500:
                raise
            return ApiResponse(status=e.code, body=None, headers=dict(e.headers.items()) if e.headers else {})

    def get(self, path: str, params: dict[str, Any] | None = None) -> ApiResponse:
        """GET an API path with retries on network failure.

        Raises:
            NetworkError: If the host stays unreachable after retries
        """
        url = self._url(path, params)
        response = self.error_handler.safe_network_operation(lambda: self._request(url), url, "GET")
        self._update_rate_limit(response.headers)
        return response

    def _update_rate_limit(self, headers: dict[str, str]) -> None:
        normalized = {k.lower(): v for k, v in headers.items()}
        remaining = normalized.get("x-ratelimit-remaining")
        reset = normalized.get("x-ratelimit-reset")
        self.rate_limit_remaining = int(remaining) if remaining and remaining.isdigit() else None
        self.rate_limit_reset = int(reset) if reset and reset.isdigit() else None

    @property
    def rate_limited(self) -> bool:
        return self.rate_limit_remaining is not None and self.rate_limit_remaining <= 0

    def check_repository(self, repository: Repository) -> RepositoryCheck:
        """Check that a repository exists and is readable."""
        response = self.get(f"/repos/{repository.owner}/{repository.repo}")
        if response.status == 404:
            return RepositoryCheck(exists=False, accessible=False, error="Repository not found or not accessible")
        if response.status == 403:
            return RepositoryCheck(
                exists=True, accessible=False, error="Repository access forbidden - check authentication"
            )
        if response.status >= 400:
            return RepositoryCheck(exists=False, accessible=False, error=f"API error: HTTP {response.status}")
        body = response.body or {}
        return RepositoryCheck(
            exists=True,
            accessible=True,
            private=bool(body.get("private", False)),
            has_issues=bool(body.get("has_issues", True)),
        )

    def get_issues(self, repository: Repository, page: int = 1) -> list[dict[str, Any]]:
        """Fetch one page of issues.

        Raises:
            NetworkError: On an API error status
        """
        query = self.config.issues
        params: dict[str, Any] = {
            "state": query.state,
            "sort": query.sort,
            "direction": query.direction,
            "per_page": query.per_page,
            "page": page,
        }
        if query.labels:
            params["labels"] = ",".join(query.labels)

        path = f"/repos/{repository.owner}/{repository.repo}/issues"
        response = self.get(path, params)
        if response.status >= 400:
            raise NetworkError(f"Issue listing failed with HTTP {response.status}", url=self._url(path), method="GET")
        return [format_issue(issue) for issue in response.body or []]

    def get_all_issues(self, repository: Repository) -> list[dict[str, Any]]:
        """Fetch every page until a short page, an exhausted rate limit or the page cap."""
        per_page = self.config.issues.per_page
        issues: list[dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            if page > 1 and self.rate_limited:
                logger.warning(f"Rate limit exhausted, stopped fetching issues at page {page} for {repository.full_name}")
                break
            batch = self.get_issues(repository, page)
            issues.extend(batch)
            if len(batch) < per_page:
                break
        else:
            logger.warning(f"Stopped fetching issues at page {MAX_PAGES} for {repository.full_name}")
        return issues


def latest_issue(issues: list[dict[str, Any]]) -> dict[str, Any] | None:
    """The most recently updated issue, reduced to its identifying fields."""
    dated = [i for i in issues if i.get("updated_at")]
    if not dated:
        return None
    newest = max(dated, key=lambda i: i["updated_at"])
    return {
        "number": newest.get("number"),
        "title": newest.get("title"),
        "state": newest.get("state"),
        "updated_at": newest["updated_at"],
        "url": newest.get("html_url"),
    }


def fetch_issue_facts(client: IssueTrackerClient, repository: Repository) -> IssueTrackerFacts:
    """Query the tracker for one repository.

    Raises:
        ApplicationError: If the API stays unreachable after retries
    """
    check = client.check_repository(repository)
    if not check.accessible:
        return IssueTrackerFacts(enabled=True, repository=repository.full_name, error=check.error)

    issues = client.get_all_issues(repository)
    newest = latest_issue(issues)
    logger.debug(f"Found {len(issues)} issues for {repository.full_name}")
    return IssueTrackerFacts(
        enabled=True,
        connected=True,
        repository=repository.full_name,
        total_issues=len(issues),
        open_issues=sum(1 for i in issues if i.get("state") == "open"),
        closed_issues=sum(1 for i in issues if i.get("state") == "closed"),
        last_updated=newest["updated_at"] if newest else None,
        latest_issue=newest,
    )


def collect_issue_facts(client: IssueTrackerClient | None, remote_url: str | None) -> IssueTrackerFacts:
    """Summarize a project's issues; every failure becomes an error reason.

    A successful answer is cached per repository for a few minutes and
    served again when the tracker is unreachable.

    Args:
        client: Configured client, or None when issue tracking is disabled
        remote_url: The project's origin URL

    Returns:
        IssueTrackerFacts; never raises
    """
    if client is None:
        return IssueTrackerFacts(enabled=False)

    repository = parse_repository(remote_url)
    if repository is None:
        return IssueTrackerFacts(enabled=True, error="No GitHub repository detected")

    fetch = client.error_handler.graceful(
        lambda: fetch_issue_facts(client, repository),
        strategy=STRATEGY_CACHE,
        cache_key=f"issues_{repository.full_name}",
    )
    try:
        return fetch()
    except Exception as e:
        logger.warning(f"Issue tracker analysis error for {repository.full_name}: {e}")
        return IssueTrackerFacts(enabled=True, repository=repository.full_name, error=str(e))
