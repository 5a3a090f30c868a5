"""
Pre-migration safety check of a remote repository.

Inspects a remote without creating a working copy and classifies it as
something the diary may adopt, something to confirm first, or something
that must not be touched.
"""

import asyncio
import logging
import re
from urllib.parse import urlparse

import requests

from oneline.adapters.git_ops import (
    GitAuthenticationError,
    GitConnectionError,
    GitError,
    GitOperations,
    GitRepositoryNotFoundError,
    sanitize_error,
)
from oneline.config import Config
from oneline.core.results import GitAuth, ValidationResult

logger = logging.getLogger(__name__)

UPLOAD_PACK_ADVERTISEMENT = "application/x-git-upload-pack-advertisement"

# Hosts whose URL path starts with the owning account
OWNERSHIP_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")

CODE_SUFFIXES = (
    ".kt", ".kts", ".java", ".gradle", ".py", ".js", ".ts", ".tsx", ".go",
    ".rs", ".c", ".h", ".cpp", ".cs", ".swift", ".rb", ".php",
)
BUILD_FILES = (
    "AndroidManifest.xml", "build.gradle.kts", "package.json", "pyproject.toml",
    "setup.py", "Cargo.toml", "go.mod", "pom.xml", "Makefile", "CMakeLists.txt",
)
SUSPICIOUS_NAME_WORDS = (
    "oneline", "app", "android", "source", "code", "project",
    "dev", "development", "src", "main", "build",
)
DIARY_NAME_WORDS = ("diary", "journal", "note", "obsidian", "vault", "daily", "log")

_DIARY_FILE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}\.md$")
_SCP_URL_RE = re.compile(r"^[\w.-]+@(?P<host>[\w.-]+):(?P<path>.+)$")


def split_remote_url(url: str) -> tuple[str, list[str]]:
    """Host and path segments of an http(s), ssh or scp-style git URL."""
    scp = _SCP_URL_RE.match(url)
    if scp and "://" not in url:
        host, path = scp.group("host"), scp.group("path")
    else:
        parsed = urlparse(url)
        host, path = parsed.hostname or "", parsed.path
    segments = [s for s in path.strip("/").split("/") if s]
    return host.lower(), segments


def repository_name(url: str) -> str:
    _, segments = split_remote_url(url)
    name = segments[-1] if segments else ""
    return name.removesuffix(".git").lower()


def repository_owner(url: str) -> str | None:
    """Owning account for the known hosting services, None elsewhere."""
    host, segments = split_remote_url(url)
    if host.removeprefix("www.") not in OWNERSHIP_HOSTS or len(segments) < 2:
        return None
    return segments[0]


def parse_advertised_refs(data: bytes) -> dict[str, str]:
    """
    Parse a smart-HTTP `info/refs` response into {ref name: sha}.

    Each pkt-line is a 4-digit hex length followed by the payload; `0000` is a
    flush. The service announcement and the placeholder ref an empty
    repository advertises are left out.
    """
    refs = {}
    pos = 0
    while pos + 4 <= len(data):
        length = int(data[pos:pos + 4], 16)
        if length == 0:
            pos += 4
            continue
        if length < 4:
            raise ValueError(f"Malformed pkt-line length {length}")
        payload = data[pos + 4:pos + length]
        pos += length

        text = payload.split(b"\0", 1)[0].decode("utf-8", errors="replace").rstrip("\n")
        if text.startswith("#"):
            continue
        sha, _, name = text.partition(" ")
        if not name or name == "capabilities^{}" or set(sha) == {"0"}:
            continue
        refs[name] = sha
    return refs


def is_code_file(path: str) -> bool:
    name = path.rsplit("/", 1)[-1]
    if name in BUILD_FILES or name.endswith(CODE_SUFFIXES):
        return True
    return name.endswith(".xml") and "android" in path.lower()


def classify_contents(repo_name: str, files: list[str], suspicious_threshold: int = 500) -> ValidationResult:
    """Content and name heuristics, strongest signal first."""
    markdown = [f for f in files if f.endswith(".md")]
    diary_files = [f for f in markdown if _DIARY_FILE_RE.match(f.rsplit("/", 1)[-1])]

    if any(is_code_file(f) for f in files):
        return ValidationResult.DANGEROUS_REPOSITORY
    if diary_files:
        if len(diary_files) == len(markdown):
            return ValidationResult.DIARY_REPOSITORY
        return ValidationResult.LIKELY_DIARY_REPOSITORY
    if any(word in repo_name for word in SUSPICIOUS_NAME_WORDS) or len(files) > suspicious_threshold:
        return ValidationResult.SUSPICIOUS_REPOSITORY
    if any(word in repo_name for word in DIARY_NAME_WORDS) or markdown:
        return ValidationResult.LIKELY_DIARY_REPOSITORY
    return ValidationResult.UNKNOWN_REPOSITORY


class RepositoryValidator:
    """Read-only inspection of a remote before the diary adopts it."""

    def __init__(self, git_ops: GitOperations, config: Config | None = None):
        self.git_ops = git_ops
        self.config = config or Config()
        self._session = requests.Session()

    async def validate_repository_safely(self, remote_url: str, username: str, token: str) -> ValidationResult:
        """Classify a remote. Never raises and never leaves anything on disk."""
        auth = GitAuth(username, token)
        safe_url = sanitize_error(remote_url)
        try:
            heads = await self._list_heads(remote_url, auth)
        except GitAuthenticationError as e:
            logger.warning(f"Authentication failed for {safe_url}: {e}")
            return ValidationResult.AUTHENTICATION_FAILED
        except GitRepositoryNotFoundError:
            logger.warning(f"Repository not found: {safe_url}")
            return ValidationResult.REPOSITORY_NOT_FOUND
        except GitConnectionError as e:
            logger.warning(f"Could not reach {safe_url}: {e}")
            return ValidationResult.CONNECTION_FAILED
        except Exception as e:
            logger.error(f"Validation of {safe_url} failed: {sanitize_error(str(e))}")
            return ValidationResult.VALIDATION_FAILED

        if not self.verify_ownership(remote_url, username):
            return ValidationResult.OWNERSHIP_VERIFICATION_FAILED
        if not heads:
            logger.info(f"{safe_url} is empty")
            return ValidationResult.EMPTY_REPOSITORY

        try:
            files = await self.git_ops.list_remote_files(remote_url, auth)
        except GitError as e:
            logger.warning(f"Could not list files of {safe_url}, judging by name only: {e}")
            files = []

        result = classify_contents(repository_name(remote_url), files, self.config.suspicious_file_threshold)
        logger.info(f"{safe_url}: {len(files)} files, classified as {result.value}")
        return result

    def verify_ownership(self, remote_url: str, username: str) -> bool:
        """The account in the URL must be the user's own, on hosts where that is knowable."""
        if not self.config.verify_ownership:
            return True
        owner = repository_owner(remote_url)
        if owner is None:
            return True
        if owner.lower() != username.strip().lower():
            logger.warning(f"Repository belongs to {owner!r}, not {username!r}")
            return False
        return True

    async def _list_heads(self, remote_url: str, auth: GitAuth) -> dict[str, str]:
        if urlparse(remote_url).scheme in ("http", "https"):
            refs = await asyncio.to_thread(self._fetch_refs, remote_url, auth)
            if refs is None:
                refs = await self.git_ops.ls_remote(remote_url, auth)
        else:
            refs = await self.git_ops.ls_remote(remote_url, auth)
        return {name: sha for name, sha in refs.items() if name.startswith("refs/heads/")}

    def _fetch_refs(self, remote_url: str, auth: GitAuth) -> dict[str, str] | None:
        """
        Ask the smart-HTTP endpoint for the advertised refs.

        Returns None when the server does not speak the smart protocol, so
        the caller can fall back to `git ls-remote`.
        """
        try:
            resp = self._session.get(
                f"{remote_url.rstrip('/')}/info/refs",
                params={"service": "git-upload-pack"},
                auth=(auth.username, auth.token) if auth.is_complete else None,
                headers={"User-Agent": "git/oneline"},
                timeout=self.config.request_timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise GitConnectionError(sanitize_error(str(e))) from e

        match resp.status_code:
            case 200:
                pass
            case 401 | 403:
                raise GitAuthenticationError(f"HTTP {resp.status_code}")
            case 404:
                raise GitRepositoryNotFoundError("HTTP 404")
            case _:
                raise GitError(f"Unexpected HTTP {resp.status_code}")

        if not resp.headers.get("Content-Type", "").startswith(UPLOAD_PACK_ADVERTISEMENT):
            return None
        return parse_advertised_refs(resp.content)
