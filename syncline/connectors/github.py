"""
GitHub source.

Streams repositories for a list of organizations, and per repository its
issues, issue comments, pull requests and review comments, newest update
first. Child streams stop paging once they pass the optional ``start`` time.

Options:
    orgs: organization logins to read
    start: ISO-8601 lower bound on ``updated_at`` for child streams

Credentials:
    token: personal access or installation token
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from syncline.core.scheduling import as_utc
from syncline.ingestion.links import next_link
from syncline.ingestion.rate_limit import ResetHeaderSpacing
from syncline.ingestion.types import Response, Source, SourceContext, Stream

API_URL = "https://api.github.com"

# GitHub allows up to 100
PAGE_SIZE = 30


class OrganizationRepositoriesStream(Stream):
    """Repositories of each organization in turn."""

    name = "repositories"

    def __init__(self, orgs: List[str]):
        self.orgs = orgs
        self.index = 0

    def seed(self, context: Any) -> str:
        self.index = 0
        return f"{API_URL}/orgs/{self.orgs[0]}/repos?per_page={PAGE_SIZE}"

    def next(self, response: Response, records: List[Any], context: Any) -> Optional[str]:
        url = next_link(response.headers.get("link"))
        if url:
            return url

        self.index += 1
        if self.index < len(self.orgs):
            return f"{API_URL}/orgs/{self.orgs[self.index]}/repos?per_page={PAGE_SIZE}"
        return None


class RepositoryStream(Stream):
    """Per-repository listing sorted by ``updated_at`` descending."""

    def __init__(self, parent: Stream, name: str, path: str, start: Optional[datetime] = None):
        self.parent = parent
        self.name = name
        self.path = path
        self.start = start

    def seed(self, context: Dict[str, Any]) -> str:
        return f"{context['url']}/{self.path}&per_page={PAGE_SIZE}"

    def next(self, response: Response, records: List[Any], context: Any) -> Optional[str]:
        if not records:
            return None
        if self.start is not None:
            oldest = datetime.fromisoformat(records[-1]["updated_at"].replace("Z", "+00:00"))
            if oldest < self.start:
                return None
        return next_link(response.headers.get("link"))


class GitHubSource(Source):
    name = "github"

    def __init__(self, options: Dict[str, Any]):
        orgs = options.get("orgs") or []
        if not orgs:
            raise ValueError("GitHub source requires at least one organization")

        start = options.get("start")
        start_at = as_utc(datetime.fromisoformat(start.replace("Z", "+00:00"))) if start else None

        repositories = OrganizationRepositoriesStream(orgs)
        self.streams = [
            repositories,
            RepositoryStream(repositories, "issues", "issues?state=all&sort=updated&direction=desc", start_at),
            RepositoryStream(repositories, "issue_comments", "issues/comments?sort=updated&direction=desc", start_at),
            RepositoryStream(repositories, "pull_requests", "pulls?state=all&sort=updated&direction=desc", start_at),
            RepositoryStream(repositories, "review_comments", "pulls/comments?sort=updated&direction=desc", start_at),
        ]
        self.spacing = ResetHeaderSpacing()

    def headers(self, context: SourceContext) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        credentials = context.credentials or {}
        if credentials.get("token"):
            headers["Authorization"] = f"token {credentials['token']}"
        return headers
