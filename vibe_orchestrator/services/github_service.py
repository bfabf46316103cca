"""GitHub API integration service"""
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional, List, Dict, TYPE_CHECKING, Union
from urllib.parse import urlparse

import git
from github import Auth, Github, GithubException, BadCredentialsException

from vibe_orchestrator.exceptions import NonZeroExit, NotAuthenticated
from vibe_orchestrator.models.pull_request import ChecksStatus, PullRequestState, PullRequestSummary
from vibe_orchestrator.services.process import run_tool
from vibe_orchestrator.utils.threading import get_api_worker_count
from vibe_orchestrator.logging_config import get_logger

if TYPE_CHECKING:
    from github.PullRequest import PullRequest
    from github.Repository import Repository
    from vibe_orchestrator.config import Config

logger = get_logger(__name__)

_CHECK_STATES = {
    "success": ChecksStatus.PASSING,
    "failure": ChecksStatus.FAILING,
    "error": ChecksStatus.FAILING,
    "pending": ChecksStatus.PENDING,
}


def parse_repo_slug(remote_url: str) -> Optional[str]:
    """Extract ``org/repo`` from a GitHub remote URL (SSH or HTTPS)."""
    if "github.com" not in remote_url:
        return None

    if remote_url.startswith("git@"):
        # Handle SSH URL format (git@github.com:org/repo.git)
        path = remote_url.split("github.com:", 1)[1]
    else:
        # Handle HTTPS URL format (https://github.com/org/repo.git)
        path = urlparse(remote_url).path.strip("/")

    if path.endswith(".git"):
        path = path[:-4]
    return path if path.count("/") == 1 else None


class GitHubService:
    """Read-only pull request lookups for the branches on screen."""

    def __init__(self, repo_path: str, config: Union['Config', dict]):
        """Initialize the service."""
        self.repo_path = repo_path
        self.gh_bin = config.get('gh_bin', 'gh')
        self.command_timeout = config.get('command_timeout', 10.0)
        self.network_timeout = config.get('network_timeout', 30.0)
        self.github_token: Optional[str] = config.get("github_token") or os.environ.get("GITHUB_TOKEN")
        self.github_repo: Optional[str] = None
        self.github: Optional[Github] = None
        self.gh_repo: Optional['Repository'] = None
        self._setup_done = False

    def check_auth(self) -> str:
        """Return an API token, asking ``gh`` when none is configured.

        Raises:
            ToolMissing: No token configured and ``gh`` is not installed
            NotAuthenticated: ``gh`` is installed but not logged in
        """
        if self.github_token:
            return self.github_token

        try:
            result = run_tool([self.gh_bin, "auth", "token"], timeout=self.command_timeout, operation="auth-token")
        except NonZeroExit as e:
            raise NotAuthenticated("gh", "auth-token", f"run 'gh auth login' ({e.stderr or 'no token'})") from e

        token = result.stdout.strip()
        if not token:
            raise NotAuthenticated("gh", "auth-token", "run 'gh auth login' (empty token)")
        self.github_token = token
        return token

    def _origin_url(self) -> Optional[str]:
        try:
            repo = git.Repo(self.repo_path, search_parent_directories=True)
            if "origin" not in [remote.name for remote in repo.remotes]:
                return None
            return repo.remotes.origin.url
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            return None

    def setup(self) -> None:
        """Resolve the repository slug and connect to the API.

        Repositories without a GitHub origin stay disabled; listing pull
        requests then returns an empty mapping.
        """
        if self._setup_done:
            return

        remote_url = self._origin_url()
        self.github_repo = parse_repo_slug(remote_url) if remote_url else None
        if self.github_repo is None:
            logger.debug("[GitHub] Not a GitHub repository")
            self._setup_done = True
            return

        token = self.check_auth()
        self.github = Github(auth=Auth.Token(token), timeout=int(self.network_timeout))
        try:
            self.gh_repo = self.github.get_repo(self.github_repo)
        except GithubException as e:
            raise self._translate(e, "get-repo") from e

        logger.debug(f"[GitHub] GitHub integration enabled for: {self.github_repo}")
        self._setup_done = True

    @staticmethod
    def _translate(error: GithubException, operation: str):
        if isinstance(error, BadCredentialsException):
            return NotAuthenticated("gh", operation, "token rejected, run 'gh auth login'")
        message = error.data.get("message", "") if isinstance(error.data, dict) else str(error.data or "")
        return NonZeroExit("gh", operation, error.status, message)

    @property
    def enabled(self) -> bool:
        return self.gh_repo is not None

    def _checks_for(self, pr: 'PullRequest') -> ChecksStatus:
        assert self.gh_repo is not None
        combined = self.gh_repo.get_commit(pr.head.sha).get_combined_status()
        if combined.total_count == 0:
            return ChecksStatus.NONE
        return _CHECK_STATES.get(combined.state, ChecksStatus.PENDING)

    def _fetch_branch_pr(self, branch_name: str) -> Optional[PullRequestSummary]:
        """Fetch the latest PR for a single branch."""
        assert self.github_repo is not None
        assert self.gh_repo is not None

        org_name = self.github_repo.split('/')[0]
        try:
            pulls = list(self.gh_repo.get_pulls(state='all', head=f"{org_name}:{branch_name}"))
            if not pulls:
                return None

            latest_pr = max(pulls, key=lambda pr: pr.created_at)
            if latest_pr.merged_at is not None:
                state = PullRequestState.MERGED
            elif latest_pr.state == 'closed':
                state = PullRequestState.CLOSED
            else:
                state = PullRequestState.OPEN

            return PullRequestSummary(
                repository=self.github_repo,
                number=latest_pr.number,
                branch=branch_name,
                state=state,
                checks=self._checks_for(latest_pr),
                url=latest_pr.html_url,
                title=latest_pr.title,
            )
        except GithubException as e:
            raise self._translate(e, "list-pull-requests") from e

    def list_pull_requests(self, branch_names: List[str]) -> Dict[str, PullRequestSummary]:
        """Get PR summaries for multiple branches by fetching in parallel.

        Branches without a PR are absent from the result.
        """
        self.setup()
        if not self.enabled or not branch_names:
            return {}

        max_workers = get_api_worker_count(len(branch_names))
        logger.debug(f"[GitHub] Fetching PR data for {len(branch_names)} branches using {max_workers} workers")

        result = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_branch = {
                executor.submit(self._fetch_branch_pr, branch): branch
                for branch in branch_names
            }
            for future in as_completed(future_to_branch):
                summary = future.result()
                if summary is not None:
                    result[future_to_branch[future]] = summary

        logger.debug(f"[GitHub] Found PRs for {len(result)} branches")
        return result

    def close(self) -> None:
        """Release the API connection."""
        if self.github is not None:
            self.github.close()
        self.github = None
        self.gh_repo = None
        self._setup_done = False
