"""GitHub REST client for pull-request diffs, file contents, commits and comments."""

import base64
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from diff_test_generator.analysis.diff_parser import file_diff_from_patch
from diff_test_generator.exceptions import FileOperationError, GitHubAPIError
from diff_test_generator.models.data_models import FileDiff
from diff_test_generator.utils.retry import with_retry

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
FILES_PER_PAGE = 100
# GitHub stops listing pull request files after 3000 entries
MAX_FILE_PAGES = 30


def is_retryable_github_error(error: Exception) -> bool:
    """429, rate-limited 403 and 5xx responses are worth another attempt."""
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    if not isinstance(error, GitHubAPIError) or error.status_code is None:
        return False
    if error.status_code == 429 or error.status_code >= 500:
        return True
    if error.status_code == 403:
        headers = {k.lower(): v for k, v in error.headers.items()}
        return headers.get('x-ratelimit-remaining') == '0' or 'retry-after' in headers
    return False


class GitHubClient:
    """Thin wrapper over the endpoints the pull-request flow needs."""

    def __init__(self, token: str, owner: str, repo: str, api_url: str = DEFAULT_API_URL,
                 max_retries: int = 3, retry_delay: float = 1.0,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep, timeout: int = 30):
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip('/')
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })

    @classmethod
    def from_config(cls, config, token: str, owner: str, repo: str) -> "GitHubClient":
        return cls(
            token=token,
            owner=owner,
            repo=repo,
            api_url=config.get('github.api_url', DEFAULT_API_URL),
            max_retries=config.get('github.max_retries', 3),
            retry_delay=config.get('github.retry_delay', 1.0),
        )

    @property
    def repo_url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.repo_url}/{path.lstrip('/')}"

        def send() -> requests.Response:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
            if response.status_code >= 400:
                raise GitHubAPIError(
                    f"GitHub {method} {path} failed (HTTP {response.status_code}): {response.text[:200]}",
                    status_code=response.status_code,
                    headers=dict(response.headers),
                )
            return response

        try:
            return with_retry(
                send,
                is_retryable=is_retryable_github_error,
                max_retries=self.max_retries,
                base_delay=self.retry_delay,
                sleep=self._sleep,
                description=f"GitHub {method} {path}",
            )
        except requests.RequestException as e:
            raise GitHubAPIError(f"GitHub {method} {path} failed: {e}") from e

    def get_pull_request(self, number: int) -> Dict[str, Any]:
        return self._request("GET", f"pulls/{number}").json()

    def list_pull_request_files(self, number: int) -> List[FileDiff]:
        """All changed files of a pull request, with their patches parsed."""
        diffs: List[FileDiff] = []
        for page in range(1, MAX_FILE_PAGES + 1):
            batch = self._request("GET", f"pulls/{number}/files",
                                  params={"per_page": FILES_PER_PAGE, "page": page}).json()
            for entry in batch:
                diff = file_diff_from_patch(entry['filename'], entry.get('status', 'modified'),
                                            entry.get('patch') or '')
                diff.previous_filename = entry.get('previous_filename')
                diffs.append(diff)
            if len(batch) < FILES_PER_PAGE:
                break
        logger.debug(f"Pull request #{number} touches {len(diffs)} file(s)")
        return diffs

    def _get_contents(self, path: str, ref: Optional[str]) -> Optional[Dict[str, Any]]:
        params = {"ref": ref} if ref else None
        try:
            return self._request("GET", f"contents/{path}", params=params).json()
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise

    def get_file_contents(self, path: str, ref: Optional[str] = None) -> Optional[str]:
        """Decoded file text at ``ref``, or None when the file does not exist there."""
        payload = self._get_contents(path, ref)
        if payload is None or isinstance(payload, list):
            return None
        if payload.get('encoding') == 'base64':
            return base64.b64decode(payload.get('content', '')).decode('utf-8')
        return payload.get('content')

    def file_exists(self, path: str, ref: Optional[str] = None) -> bool:
        return self._get_contents(path, ref) is not None

    def commit_or_update_file(self, path: str, content: str, message: str, branch: str) -> Dict[str, Any]:
        """Create ``path`` on ``branch`` or update it in place when it already exists."""
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode('utf-8')).decode('ascii'),
            "branch": branch,
        }
        existing = self._get_contents(path, branch)
        if existing and not isinstance(existing, list) and existing.get('sha'):
            body["sha"] = existing['sha']
        logger.info(f"{'Updating' if 'sha' in body else 'Creating'} {path} on {branch}")
        return self._request("PUT", f"contents/{path}", json=body).json()

    def comment_pr(self, number: int, body: str) -> Dict[str, Any]:
        return self._request("POST", f"issues/{number}/comments", json={"body": body}).json()


class GitHubFileSource:
    """Read-only view of repository files at a ref, shaped like the local writer."""

    def __init__(self, client: GitHubClient):
        self.client = client

    def exists(self, path: str, ref: Optional[str] = None) -> bool:
        return self.client.file_exists(path, ref)

    def read(self, path: str, ref: Optional[str] = None) -> str:
        content = self.client.get_file_contents(path, ref)
        if content is None:
            raise FileOperationError(f"{path} does not exist at {ref or 'the default branch'}", filepath=path)
        return content
