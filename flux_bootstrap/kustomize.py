"""Library for running `kustomize build` on the deployment repository.

The overlay of an environment is flattened into the list of objects that
would be applied to the cluster:

```python
from flux_bootstrap import kustomize

objects = await kustomize.build(Path('/path/to/repo/envs/dev')).objects()
for object in objects:
    print(f"Found object {object['apiVersion']} {object['kind']}")
```
"""

from aiofiles.ospath import isdir
import logging
from pathlib import Path
from typing import Any

import yaml

from . import command
from .command import Command, Task, format_path
from .exceptions import InputException, KustomizeException
from .kustomization import is_flux_kustomization

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "build",
    "Kustomize",
]

KUSTOMIZE_BIN = "kustomize"


class Kustomize:
    """Library for issuing a kustomize command."""

    def __init__(self, task: Task) -> None:
        """Initialize Kustomize."""
        self._task = task

    async def run(self) -> str:
        """Run the kustomize command and return the output as a string."""
        return await command.run(self._task)

    async def objects(self) -> list[dict[str, Any]]:
        """Run the kustomize command and return the result cluster objects as a list."""
        out = await self.run()
        try:
            return [doc for doc in yaml.safe_load_all(out) if doc is not None]
        except yaml.YAMLError as err:
            raise KustomizeException(
                f"Unable to parse command output: {self._task}: {err}"
            ) from err

    async def flux_kustomizations(self) -> list[dict[str, Any]]:
        """Return only the Flux Kustomization objects of the build."""
        return [doc for doc in await self.objects() if is_flux_kustomization(doc)]


class Build(Task):
    """A task that issues a kustomize build command."""

    def __init__(self, path: Path) -> None:
        """Initialize Build."""
        self._path = path

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the task."""
        if stdin is not None:
            raise InputException("Invalid stdin cannot be passed to build command")
        if not await isdir(self._path):
            raise KustomizeException(f"Path is not a directory: {self._path}")
        task = Command([KUSTOMIZE_BIN, "build", str(self._path)], exc=KustomizeException)
        return await task.run()

    def __str__(self) -> str:
        """Render as a debug string."""
        return f"kustomize build {format_path(self._path)}"


def build(path: Path) -> Kustomize:
    """Build cluster artifacts from the specified path."""
    _LOGGER.debug("Building %s", path)
    return Kustomize(Build(path))
