"""Render a directory of templates into a sink.

Every file below the source directory is rendered with the `zero` missing
key policy and written to the same relative path of the sink. The sink then
stages the file, which for a git working tree means adding it to the index.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from .engine import MissingKeyPolicy, TemplateRenderer

__all__ = [
    "TemplateSink",
    "DirectorySink",
    "render_directory",
]

_LOGGER = logging.getLogger(__name__)


class TemplateSink(ABC):
    """Destination of rendered files."""

    @abstractmethod
    async def write(self, path: Path, content: bytes) -> None:
        """Write content to the relative path, creating parent directories."""

    @abstractmethod
    async def stage(self, path: Path) -> None:
        """Mark the relative path as ready to be persisted."""


class DirectorySink(TemplateSink):
    """Writes rendered files into a plain directory."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self.staged: list[Path] = []

    @property
    def root(self) -> Path:
        return self._root

    async def write(self, path: Path, content: bytes) -> None:
        target = self._root / path
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, mode="wb") as out:
            await out.write(content)

    async def stage(self, path: Path) -> None:
        self.staged.append(path)


async def render_directory(
    src_dir: Path,
    values: Mapping[str, Any],
    sink: TemplateSink,
    renderer: TemplateRenderer,
) -> list[Path]:
    """Render every file below src_dir into the sink.

    Files are visited in sorted path order. The relative paths written are
    returned. The first failure aborts the walk.
    """
    written = []
    for path in sorted(src_dir.rglob("*")):
        if path.is_dir():
            continue
        relative = path.relative_to(src_dir)
        _LOGGER.debug("Rendering template %s", relative)
        async with aiofiles.open(path, mode="r", encoding="utf-8") as template_file:
            template = await template_file.read()
        content = await renderer.render(
            str(relative), template, values, MissingKeyPolicy.ZERO
        )
        await sink.write(relative, content)
        await sink.stage(relative)
        written.append(relative)
    _LOGGER.info("Rendered %d templates from %s", len(written), src_dir)
    return written
