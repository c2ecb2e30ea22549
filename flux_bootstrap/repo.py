"""Library for operating on the local clone of the deployment repository.

The deployment repository is cloned into the workspace, a branch is checked
out (created and published first when the remote does not have it yet),
files are staged as the pipeline writes them and finally committed and
pushed in a single commit.

Example usage:
```
from flux_bootstrap import repo

deployment = await repo.clone_repo(url, workdir / "repo", env)
await repo.checkout_or_create_branch(deployment, "dev")
...
await repo.commit_changes(deployment, "apply templates")
await repo.push_repo(deployment, "dev")
```
"""

import logging
from pathlib import Path

import aiofiles
import aiofiles.os
import git

from .exceptions import GitException
from .template import TemplateSink

__all__ = [
    "clone_repo",
    "branch_exists",
    "checkout_or_create_branch",
    "stage",
    "commit_changes",
    "push_repo",
    "GitWorktreeSink",
]

_LOGGER = logging.getLogger(__name__)

REMOTE = "origin"
AUTHOR_NAME = "openmcp"
AUTHOR_EMAIL = "noreply@openmcp.cloud"
UP_TO_DATE = "Everything up-to-date"


async def clone_repo(url: str, path: Path, env: dict[str, str] | None = None) -> git.Repo:
    """Clone the repository with all branches into path.

    The environment carries the credentials and is kept on the returned
    repository so that later fetches and pushes authenticate the same way.
    """
    _LOGGER.info("Cloning repository %s", url)
    try:
        deployment = git.Repo.clone_from(url, str(path), env=env or None)
    except git.exc.GitCommandError as err:
        raise GitException(f"failed to clone repository {url}: {err}") from err
    if env:
        deployment.git.update_environment(**env)
    return deployment


def branch_exists(deployment: git.Repo, branch: str) -> bool:
    """Return true if the branch exists locally or on the remote."""
    for ref in (f"refs/heads/{branch}", f"refs/remotes/{REMOTE}/{branch}"):
        try:
            deployment.git.show_ref("--verify", "--quiet", ref)
        except git.exc.GitCommandError:
            continue
        _LOGGER.debug("Branch %s exists as %s", branch, ref)
        return True
    return False


async def checkout_or_create_branch(deployment: git.Repo, branch: str) -> None:
    """Check out the branch, creating and publishing it when it does not exist."""
    try:
        if not branch_exists(deployment, branch):
            _LOGGER.info("Branch %s does not exist, creating it", branch)
            deployment.git.checkout("-b", branch)
            deployment.git.push(REMOTE, f"refs/heads/{branch}:refs/heads/{branch}")
        deployment.git.checkout(branch)
    except git.exc.GitCommandError as err:
        raise GitException(f"failed to checkout branch {branch}: {err}") from err
    _LOGGER.debug("Checked out branch %s", branch)


async def stage(deployment: git.Repo, path: Path | str) -> None:
    """Stage additions, modifications and deletions below the path."""
    try:
        deployment.git.add("--all", "--", str(path))
    except git.exc.GitCommandError as err:
        raise GitException(f"failed to stage {path}: {err}") from err


def _has_staged_changes(deployment: git.Repo) -> bool:
    if not deployment.head.is_valid():
        return bool(deployment.index.entries)
    return bool(deployment.index.diff("HEAD"))


async def commit_changes(deployment: git.Repo, message: str) -> str | None:
    """Commit the staged changes and return the commit sha.

    None is returned when nothing is staged.
    """
    if not _has_staged_changes(deployment):
        _LOGGER.info("No changes to commit")
        return None
    actor = git.Actor(AUTHOR_NAME, AUTHOR_EMAIL)
    try:
        commit = deployment.index.commit(message, author=actor, committer=actor)
    except (git.exc.GitError, ValueError) as err:
        raise GitException(f"failed to commit changes: {err}") from err
    _LOGGER.info("Created commit: %s", commit.hexsha)
    return commit.hexsha


async def push_repo(deployment: git.Repo, branch: str) -> None:
    """Push HEAD to the branch of the remote."""
    _LOGGER.debug("Pushing changes to remote repository")
    try:
        _, _, stderr = deployment.git.push(
            REMOTE, f"HEAD:refs/heads/{branch}", with_extended_output=True
        )
    except git.exc.GitCommandError as err:
        raise GitException(f"failed to push changes: {err}") from err
    if UP_TO_DATE in stderr:
        _LOGGER.info("No changes to push")


class GitWorktreeSink(TemplateSink):
    """Writes rendered files into the working tree and adds them to the index."""

    def __init__(self, deployment: git.Repo) -> None:
        self._repo = deployment
        if deployment.working_tree_dir is None:
            raise GitException("repository has no working tree")
        self._root = Path(deployment.working_tree_dir)

    @property
    def root(self) -> Path:
        return self._root

    async def write(self, path: Path, content: bytes) -> None:
        target = self._root / path
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, mode="wb") as out:
            await out.write(content)

    async def stage(self, path: Path) -> None:
        await stage(self._repo, path)
