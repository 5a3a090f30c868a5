"""
Git operations against one local working tree, using the native git CLI.

All network and tree operations are coroutines; git runs as an asyncio
subprocess that is killed if the awaiting task is cancelled.

Credentials:
    Username and token are sent per command as an HTTP Basic
    `Authorization` header (`-c http.extraHeader=...`). They are never
    embedded in the remote URL, so they never land in `.git/config`.
    Error text from git is sanitized before it is logged or raised.

Tree layout:
    One diary file per date at the top of the working tree. A clone is
    made in a hidden staging directory next to the target and renamed
    into place only once it completed, so a failed or cancelled clone
    leaves nothing behind and the operations stay uninitialized.
"""
import asyncio
import base64
import logging
import os
import re
import shutil
import subprocess
import tempfile
import uuid
from pathlib import Path

from oneline.core.results import GitAuth
from oneline.ports.file_storage import FileStorage

logger = logging.getLogger(__name__)

# Public API
__all__ = [
    'GitOperations',
    'GitError',
    'GitNotAvailableError',
    'GitNotInitializedError',
    'GitAuthenticationError',
    'GitConnectionError',
    'GitRepositoryNotFoundError',
    'GitPushRejectedError',
    'GitMergeConflictError',
    'GitRemoteMismatchError',
    'classify_git_error',
    'sanitize_error',
]


class GitError(RuntimeError):
    """A git command failed."""
    pass


class GitNotAvailableError(GitError):
    """Raised when git is not installed or not accessible."""
    pass


class GitNotInitializedError(GitError):
    """Raised when an operation needs a working tree that was never opened."""
    pass


class GitAuthenticationError(GitError):
    """The remote rejected the credentials."""
    pass


class GitConnectionError(GitError):
    """DNS, TCP or TLS failure talking to the remote."""
    pass


class GitRepositoryNotFoundError(GitError):
    """The remote answered but there is no repository at that URL."""
    pass


class GitPushRejectedError(GitError):
    """The remote moved on (non-fast-forward); pull before pushing again."""
    pass


class GitMergeConflictError(GitError):
    """A merge stopped on conflicts. The merge was aborted."""

    def __init__(self, paths: list[str]):
        self.paths = paths
        super().__init__(f"Merge conflict in: {', '.join(paths)}")


class GitRemoteMismatchError(GitError):
    """The working tree tracks a different remote than the one requested."""
    pass


_AUTH_MARKERS = (
    'authentication failed',
    'could not read username',
    'could not read password',
    'terminal prompts disabled',
    'invalid username or password',
    'returned error: 401',
    'returned error: 403',
    'permission denied',
)
_NOT_FOUND_MARKERS = (
    'repository not found',
    'returned error: 404',
    'does not appear to be a git repository',
    'not found',
    'does not exist',
)
_CONNECTION_MARKERS = (
    'could not resolve host',
    'could not resolve proxy',
    'failed to connect',
    'connection refused',
    'connection timed out',
    'operation timed out',
    'network is unreachable',
    'connection reset',
    'empty reply from server',
    'ssl',
    'tls',
)
_REJECTED_MARKERS = ('[rejected]', 'non-fast-forward', 'fetch first', '[remote rejected]')


def sanitize_error(error: str) -> str:
    """
    Remove credentials from git output.

    Strips `user:pass@` userinfo from http(s) URLs and the value of any
    Authorization header that may be echoed back.
    """
    result = re.sub(r'(https?://)[^\s/]+@(?=[a-zA-Z0-9\[])', r'\1', error)
    result = re.sub(r'(Authorization:\s*\w+\s+)\S+', r'\1[REDACTED]', result, flags=re.IGNORECASE)
    return result.strip()


def classify_git_error(stderr: str, default: type[GitError] = GitError) -> GitError:
    """Map git's stderr to the most specific error class."""
    message = sanitize_error(stderr) or 'git command failed'
    lowered = message.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return GitAuthenticationError(message)
    if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        return GitRepositoryNotFoundError(message)
    if any(marker in lowered for marker in _CONNECTION_MARKERS):
        return GitConnectionError(message)
    return default(message)


def _same_remote(a: str, b: str) -> bool:
    def normalize(url: str) -> str:
        url = url.strip().rstrip('/')
        return url[:-4] if url.endswith('.git') else url
    return normalize(a) == normalize(b)


class GitOperations:
    """
    Clone/open, stage, commit, push and pull for one working tree.

    States: uninitialized -> initialized. Every call makes at most one
    attempt; retrying is up to the caller. Tree mutations are serialized
    by an internal lock.
    """

    def __init__(
        self,
        storage: FileStorage,
        git_binary: str = 'git',
        default_author_name: str = 'OneLine',
        default_author_email: str = 'oneline@localhost',
    ):
        self.storage = storage
        self.git_binary = git_binary
        self.default_author_name = default_author_name
        self.default_author_email = default_author_email
        self._local_path: Path | None = None
        self._remote_url: str | None = None
        self._auth: GitAuth | None = None
        self._initialized = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self._initialized

    def get_local_path(self) -> Path | None:
        return self._local_path

    def get_remote_url(self) -> str | None:
        return self._remote_url

    def reset(self) -> None:
        """Forget the current working tree without touching the disk."""
        self._initialized = False
        self._local_path = None
        self._remote_url = None
        self._auth = None

    # ------------------------------------------------------------------
    # Working tree lifecycle
    # ------------------------------------------------------------------

    async def init_repository(self, remote_url: str, local_path: Path | str, auth: GitAuth) -> bool:
        """
        Open the repository at `local_path`, cloning `remote_url` if needed.

        Raises:
            GitAuthenticationError, GitConnectionError, GitRepositoryNotFoundError:
                the clone failed for that reason
            GitRemoteMismatchError: the existing tree tracks another remote
        """
        local_path = Path(local_path)
        async with self._lock:
            if (
                self._initialized
                and self._local_path == local_path
                and self._remote_url is not None
                and _same_remote(self._remote_url, remote_url)
                and (local_path / '.git').exists()
            ):
                self._auth = auth
                return True

            self._initialized = False
            if (local_path / '.git').exists():
                existing = await self._config_get(local_path, 'remote.origin.url')
                if existing is None:
                    await self._run(['remote', 'add', 'origin', remote_url], cwd=local_path, check=True)
                elif not _same_remote(existing, remote_url):
                    raise GitRemoteMismatchError(
                        f"{local_path} tracks {sanitize_error(existing)}, not {sanitize_error(remote_url)}"
                    )
                logger.info(f"Opened existing repository at {local_path}")
            else:
                await self._clone(remote_url, local_path, auth)

            self._local_path = local_path
            self._remote_url = remote_url
            self._auth = auth
            self._initialized = True
            return True

    async def _clone(self, remote_url: str, local_path: Path, auth: GitAuth) -> None:
        if local_path.exists():
            if any(local_path.iterdir()):
                raise GitError(f"{local_path} exists and is not a git repository")
            local_path.rmdir()
        local_path.parent.mkdir(parents=True, exist_ok=True)

        staging = local_path.parent / f".{local_path.name}.clone-{uuid.uuid4().hex[:8]}"
        logger.info(f"Cloning {sanitize_error(remote_url)} into {local_path}")
        try:
            await self._run(['clone', '--quiet', remote_url, str(staging)], cwd=local_path.parent, auth=auth, check=True)
            os.replace(staging, local_path)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        logger.info(f"Cloned repository into {local_path}")

    async def remove_working_tree(self, path: Path | str | None = None) -> bool:
        """
        Delete a working tree from disk and forget it.

        Defaults to the current tree. Returns False if there was nothing to delete.
        """
        async with self._lock:
            target = Path(path) if path is not None else self._local_path
            if target is not None and target == self._local_path:
                self.reset()
            if target is None or not target.exists():
                return False
            await asyncio.to_thread(shutil.rmtree, target)
            logger.info(f"Deleted working tree {target}")
            return True

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    async def add_file(self, path: str) -> bool:
        """Stage one path. Staging an unchanged path is a no-op."""
        root = self._require_initialized()
        rel = self._relative(root, path)
        async with self._lock:
            await self._run(['add', '--', rel], cwd=root, check=True)
        return True

    async def save_and_commit(
        self,
        file_name: str,
        content: str,
        message: str,
        author_name: str = '',
        author_email: str = '',
    ) -> bool:
        """
        Write a file, stage it and commit it.

        Returns False without committing when the content matches HEAD.
        """
        root = self._require_initialized()
        rel = self._relative(root, file_name)
        async with self._lock:
            self._ensure_not_merging(root)
            await self.storage.write(root / rel, content)
            await self._run(['add', '--', rel], cwd=root, check=True)
            if not await self._has_staged_changes(root, rel):
                logger.debug(f"{rel} unchanged, nothing to commit")
                return False
            await self._commit(root, rel, message, author_name, author_email)
            return True

    async def delete_and_commit(
        self,
        file_name: str,
        message: str,
        author_name: str = '',
        author_email: str = '',
    ) -> bool:
        """Remove a file and commit the removal. Returns False if it was already absent."""
        root = self._require_initialized()
        rel = self._relative(root, file_name)
        async with self._lock:
            self._ensure_not_merging(root)
            tracked = await self._is_tracked(root, rel)
            on_disk = (root / rel).exists()
            if not tracked and not on_disk:
                return False

            if tracked:
                await self._run(['rm', '--quiet', '-f', '--', rel], cwd=root, check=True)
            else:
                await self.storage.delete(root / rel)

            if await self._has_staged_changes(root, rel):
                await self._commit(root, rel, message, author_name, author_email)
            return True

    async def has_uncommitted_changes(self) -> bool:
        root = self._require_initialized()
        result = await self._run(['status', '--porcelain'], cwd=root, check=True)
        return bool(result.stdout.strip())

    async def last_commit_millis(self, file_name: str) -> int | None:
        """Commit time of the last change to a file, None if it was never committed."""
        root = self._require_initialized()
        rel = self._relative(root, file_name)
        result = await self._run(['log', '-1', '--format=%ct', '--', rel], cwd=root)
        stamp = result.stdout.strip()
        if result.returncode != 0 or not stamp:
            return None
        return int(stamp) * 1000

    # ------------------------------------------------------------------
    # Remote operations
    # ------------------------------------------------------------------

    async def push(self) -> bool:
        """
        Push the current branch to origin.

        The target is the remote branch we merge from, else the remote's
        default branch, so devices with different local branch names share
        one history. The local branch name is used only for an empty remote.

        Raises:
            GitPushRejectedError: the remote has commits we do not; pull first
        """
        root = self._require_initialized()
        async with self._lock:
            if not await self._has_head(root):
                logger.debug("No commits yet, nothing to push")
                return True
            branch = await self._push_branch(root)
            result = await self._run(
                ['push', '--porcelain', '-u', 'origin', f'HEAD:refs/heads/{branch}'],
                cwd=root,
                auth=self._auth,
            )
            if result.returncode != 0:
                output = f"{result.stdout}\n{result.stderr}"
                if any(marker in output for marker in _REJECTED_MARKERS):
                    raise GitPushRejectedError(
                        f"Push rejected, remote has new commits: {sanitize_error(result.stderr)}"
                    )
                raise classify_git_error(result.stderr)
            logger.info(f"Pushed to {sanitize_error(self._remote_url or 'origin')}")
            return True

    async def pull(self, use_ours_strategy: bool = True) -> bool:
        """
        Fetch origin and merge it into the current branch.

        With `use_ours_strategy` the whole pull is OURS: when the histories
        diverged, the merge commit keeps the local tree as-is, so local entries
        win over remote ones. A fast-forward still brings in remote commits.
        Without it a regular three-way merge runs; a conflicting merge is
        aborted and raised as GitMergeConflictError.
        """
        root = self._require_initialized()
        async with self._lock:
            if self._is_merging(root):
                logger.warning("Interrupted merge found, aborting it before pull")
                await self._run(['merge', '--abort'], cwd=root, check=True)

            await self._run(['fetch', '--quiet', 'origin'], cwd=root, auth=self._auth, check=True)
            remote_ref = await self._remote_branch(root)
            if remote_ref is None:
                logger.debug("Remote has no branches yet, nothing to merge")
                return True

            if not await self._has_head(root):
                branch = remote_ref.removeprefix('refs/remotes/origin/')
                await self._run(['checkout', '--quiet', '-B', branch, remote_ref], cwd=root, check=True)
                logger.info(f"Checked out {branch} from remote")
                return True

            if use_ours_strategy:
                await self._merge_keeping_ours(root, remote_ref)
            else:
                await self._merge(root, remote_ref)
            return True

    async def _merge(self, root: Path, ref: str) -> None:
        result = await self._run(
            ['merge', '--no-edit', '--allow-unrelated-histories', ref],
            cwd=root,
            env=self._identity_env(),
        )
        if result.returncode == 0:
            return
        conflicted = await self._unmerged_paths(root)
        if conflicted:
            await self._run(['merge', '--abort'], cwd=root, check=True)
            logger.error(f"Merge with {ref} conflicts on {conflicted}, aborted")
            raise GitMergeConflictError(conflicted)
        raise classify_git_error(result.stderr)

    async def _merge_keeping_ours(self, root: Path, ref: str) -> None:
        if await self._is_ancestor(root, ref, 'HEAD'):
            logger.debug("Already up to date")
            return
        # git's ours strategy never fast-forwards, so do that case by hand
        if await self._is_ancestor(root, 'HEAD', ref):
            await self._run(['merge', '--ff-only', '--quiet', ref], cwd=root, check=True)
            logger.info(f"Fast-forwarded to {ref}")
            return

        result = await self._run(
            ['merge', '-s', 'ours', '--no-edit', '--allow-unrelated-histories', ref],
            cwd=root,
            env=self._identity_env(),
        )
        if result.returncode != 0:
            if self._is_merging(root):
                await self._run(['merge', '--abort'], cwd=root, check=True)
            raise classify_git_error(result.stderr)
        logger.info(f"Merged {ref} keeping local versions")

    # ------------------------------------------------------------------
    # Read-only remote probing (no working tree involved)
    # ------------------------------------------------------------------

    async def ls_remote(self, remote_url: str, auth: GitAuth | None = None) -> dict[str, str]:
        """List remote refs as {ref name: sha}. Empty for a repository with no commits."""
        result = await self._run(['ls-remote', remote_url], auth=auth)
        if result.returncode != 0:
            raise classify_git_error(result.stderr)
        refs = {}
        for line in result.stdout.splitlines():
            sha, _, name = line.partition('\t')
            if name:
                refs[name.strip()] = sha.strip()
        return refs

    async def list_remote_files(self, remote_url: str, auth: GitAuth | None = None) -> list[str]:
        """
        List every file path at the remote's HEAD.

        Fetches a depth-1, blob-less copy of the history into a temporary bare
        repository that is removed before returning; no working tree is made.
        """
        with tempfile.TemporaryDirectory(prefix='oneline-ls-') as tmp:
            await self._run(['init', '--quiet', '--bare', tmp], check=True)
            await self._run(
                ['fetch', '--quiet', '--depth=1', '--filter=blob:none', remote_url, 'HEAD'],
                cwd=Path(tmp),
                auth=auth,
                check=True,
            )
            result = await self._run(['ls-tree', '-r', '--name-only', 'FETCH_HEAD'], cwd=Path(tmp), check=True)
        return [line for line in result.stdout.splitlines() if line]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_initialized(self) -> Path:
        if not self._initialized or self._local_path is None:
            raise GitNotInitializedError("Repository not initialized")
        return self._local_path

    def _relative(self, root: Path, file_name: str) -> str:
        """Validate that a path stays inside the working tree and outside .git."""
        full = (root / file_name).resolve()
        try:
            rel = full.relative_to(root.resolve())
        except ValueError:
            raise ValueError(f"Path escapes the repository: {file_name}")
        if not rel.parts or rel.parts[0] == '.git':
            raise ValueError(f"Not a working tree file: {file_name}")
        return rel.as_posix()

    def _is_merging(self, root: Path) -> bool:
        return (root / '.git' / 'MERGE_HEAD').exists()

    def _ensure_not_merging(self, root: Path) -> None:
        if self._is_merging(root):
            raise GitError("A merge is in progress; pull again to reset it")

    def _identity_env(self, author_name: str = '', author_email: str = '') -> dict:
        if not (author_name.strip() and author_email.strip()):
            author_name, author_email = self.default_author_name, self.default_author_email
        return {
            'GIT_AUTHOR_NAME': author_name,
            'GIT_AUTHOR_EMAIL': author_email,
            'GIT_COMMITTER_NAME': author_name,
            'GIT_COMMITTER_EMAIL': author_email,
        }

    async def _commit(self, root: Path, rel: str, message: str, author_name: str, author_email: str) -> None:
        # --only keeps whatever else is staged out of this commit
        await self._run(
            ['commit', '--quiet', '--only', '-m', message, '--', rel],
            cwd=root,
            env=self._identity_env(author_name, author_email),
            check=True,
        )
        logger.debug(f"Committed: {message}")

    async def _has_head(self, root: Path) -> bool:
        result = await self._run(['rev-parse', '--verify', '--quiet', 'HEAD'], cwd=root)
        return result.returncode == 0

    async def _has_staged_changes(self, root: Path, rel: str) -> bool:
        result = await self._run(['diff', '--cached', '--quiet', '--', rel], cwd=root)
        if result.returncode not in (0, 1):
            raise classify_git_error(result.stderr)
        return result.returncode == 1

    async def _is_tracked(self, root: Path, rel: str) -> bool:
        result = await self._run(['ls-files', '--error-unmatch', '--', rel], cwd=root)
        return result.returncode == 0

    async def _unmerged_paths(self, root: Path) -> list[str]:
        result = await self._run(['diff', '--name-only', '--diff-filter=U'], cwd=root, check=True)
        return sorted({line for line in result.stdout.splitlines() if line})

    async def _is_ancestor(self, root: Path, ancestor: str, descendant: str) -> bool:
        result = await self._run(['merge-base', '--is-ancestor', ancestor, descendant], cwd=root)
        if result.returncode not in (0, 1):
            raise classify_git_error(result.stderr)
        return result.returncode == 0

    async def _rev_parse(self, root: Path, rev: str) -> str | None:
        result = await self._run(['rev-parse', '--verify', '--quiet', rev], cwd=root)
        return result.stdout.strip() if result.returncode == 0 else None

    async def _remote_branch(self, root: Path) -> str | None:
        """Remote-tracking ref to merge: origin/<current branch>, else the only remote branch."""
        branch = await self._run(['symbolic-ref', '--short', 'HEAD'], cwd=root, check=True)
        candidate = f"refs/remotes/origin/{branch.stdout.strip()}"
        if await self._rev_parse(root, candidate) is not None:
            return candidate

        refs = await self._run(['for-each-ref', '--format=%(refname)', 'refs/remotes/origin'], cwd=root, check=True)
        branches = [ref for ref in refs.stdout.splitlines() if ref and not ref.endswith('/HEAD')]
        return branches[0] if len(branches) == 1 else None

    async def _push_branch(self, root: Path) -> str:
        tracked = await self._remote_branch(root)
        if tracked is not None:
            return tracked.removeprefix('refs/remotes/origin/')

        current = await self._run(['symbolic-ref', '--short', 'HEAD'], cwd=root, check=True)
        result = await self._run(['ls-remote', '--symref', 'origin'], cwd=root, auth=self._auth)
        if result.returncode != 0:
            return current.stdout.strip()

        default, heads = None, []
        for line in result.stdout.splitlines():
            if line.startswith('ref: ') and line.endswith('\tHEAD'):
                default = line.removeprefix('ref: ').partition('\t')[0].removeprefix('refs/heads/')
                continue
            name = line.partition('\t')[2]
            if name.startswith('refs/heads/'):
                heads.append(name.removeprefix('refs/heads/'))
        if default in heads:
            return default
        if len(heads) == 1:
            return heads[0]
        return current.stdout.strip()

    async def _config_get(self, root: Path, key: str) -> str | None:
        result = await self._run(['config', '--get', key], cwd=root)
        return result.stdout.strip() if result.returncode == 0 and result.stdout.strip() else None

    async def _run(
        self,
        args: list[str],
        cwd: Path | None = None,
        auth: GitAuth | None = None,
        env: dict | None = None,
        check: bool = False,
    ) -> subprocess.CompletedProcess:
        """
        Run git asynchronously.

        Args:
            args: Git command arguments (without 'git' prefix)
            cwd: Working directory
            auth: Credentials sent as an Authorization header
            env: Additional environment variables
            check: Raise a classified GitError on a non-zero exit

        Returns:
            CompletedProcess with decoded stdout and stderr
        """
        command = [
            self.git_binary,
            '-c', 'commit.gpgsign=false',
            '-c', 'core.quotepath=false',
        ]
        if auth is not None and auth.is_complete:
            token = base64.b64encode(f"{auth.username}:{auth.token}".encode()).decode()
            command += ['-c', f'http.extraHeader=Authorization: Basic {token}']
        command += args

        full_env = {
            **os.environ,
            'GIT_TERMINAL_PROMPT': '0',  # Disable interactive prompts
            'LC_ALL': 'C',  # Stable messages for error classification
            **(env or {}),
        }

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd,
                env=full_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise GitNotAvailableError(f"Git not found: {self.git_binary}")

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            logger.warning(f"git {args[0]} cancelled")
            raise

        result = subprocess.CompletedProcess(
            args=['git', *args],
            returncode=proc.returncode,
            stdout=stdout.decode('utf-8', errors='replace'),
            stderr=stderr.decode('utf-8', errors='replace'),
        )
        if check and result.returncode != 0:
            error = classify_git_error(result.stderr)
            logger.error(f"git {args[0]} failed: {error}")
            raise error
        return result
