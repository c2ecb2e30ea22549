"""Fixtures shared by the tests."""

from pathlib import Path

import git
import pytest

AUTHOR = git.Actor("test", "test@example.com")

GIT_CONFIG = """\
auth:
  basic:
    username: bot
    password: secret
"""


@pytest.fixture(name="remote")
def remote_fixture(tmp_path: Path) -> Path:
    """A bare repository with a single commit on the main branch."""
    seed_dir = tmp_path / "seed"
    seed = git.Repo.init(seed_dir)
    (seed_dir / "README.md").write_text("deployment repository\n")
    seed.index.add(["README.md"])
    seed.index.commit("initial commit", author=AUTHOR, committer=AUTHOR)
    seed.git.branch("-M", "main")
    remote = tmp_path / "remote.git"
    git.Repo.clone_from(str(seed_dir), str(remote), bare=True)
    return remote


@pytest.fixture(name="git_config_file")
def git_config_file_fixture(tmp_path: Path) -> Path:
    """Credentials file for the deployment repository."""
    path = tmp_path / "git-config.yaml"
    path.write_text(GIT_CONFIG)
    return path
