"""Shared fixtures: local bare remotes and working trees for git-backed tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from oneline.adapters.file_storage import LocalFileStorage
from oneline.adapters.git_ops import GitOperations
from oneline.config import Config
from oneline.core.results import GitAuth

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

AUTH = GitAuth("me", "secret-token")


def make_bare_remote(path: Path) -> str:
    """Create an empty bare repository and return its file:// URL."""
    subprocess.run(["git", "init", "--quiet", "--bare", str(path)], check=True)
    return path.as_uri()


def git_log(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "log", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path / "data")


@pytest.fixture
def remote_url(tmp_path):
    return make_bare_remote(tmp_path / "remote.git")


@pytest.fixture
def device(tmp_path):
    """Factory for independent clones, one per simulated device."""

    async def _clone(name: str, url: str) -> GitOperations:
        ops = GitOperations(LocalFileStorage(tmp_path / name))
        await ops.init_repository(url, tmp_path / name / "repo", AUTH)
        return ops

    return _clone


@pytest.fixture
def config(tmp_path):
    return Config(
        data_dir=tmp_path / "data",
        settings_backend="memory",
        settings_file=tmp_path / "settings.json",
        verify_ownership=False,
    )
