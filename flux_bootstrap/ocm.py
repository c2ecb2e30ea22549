"""Library for working with OCM repositories using the `ocm` command line tool.

The `OcmClient` is the only place that talks to a component repository. The
resolver and the pipeline accept any object with the same async methods, which
lets tests substitute an in-memory repository.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from . import command
from .component import ComponentVersion, Location
from .exceptions import InputException, OcmException

__all__ = [
    "OcmClient",
]

_LOGGER = logging.getLogger(__name__)

OCM_BIN = "ocm"
DIRTREE_DOWNLOADER = "ocm/dirtree"


class OcmClient:
    """Client that fetches component versions and resources via the ocm CLI."""

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize OcmClient.

        The optional config path is passed to every invocation as `--config`
        and typically holds repository credentials.
        """
        self._config_path = config_path

    def _command(self, args: list[str]) -> command.Command:
        cmd = [OCM_BIN] + args
        if self._config_path:
            cmd.extend(["--config", str(self._config_path)])
        return command.Command(cmd, exc=OcmException)

    async def get_component_version(self, location: str) -> ComponentVersion:
        """Fetch the descriptor for the component version at the location."""
        Location.parse(location)
        out = await command.run(
            self._command(["get", "componentversion", "--output", "yaml", location])
        )
        try:
            doc = yaml.safe_load(out)
        except yaml.YAMLError as err:
            raise OcmException(
                f"Unable to parse component version output for {location}: {err}"
            ) from err
        try:
            return ComponentVersion.parse_doc(doc)
        except InputException as err:
            raise OcmException(
                f"Unexpected component version output for {location}: {err}"
            ) from err

    async def list_component_versions(self, location: str) -> list[str]:
        """Return the versions available for the component at the location.

        Any version in the location is ignored and versions are returned in
        the order reported by the repository.
        """
        loc = Location.parse(location)
        target = str(Location(repository=loc.repository, name=loc.name))
        out = await command.run(
            self._command(["get", "componentversions", "--output", "yaml", target])
        )
        try:
            docs = [doc for doc in yaml.safe_load_all(out) if doc]
        except yaml.YAMLError as err:
            raise OcmException(
                f"Unable to parse component versions output for {target}: {err}"
            ) from err
        versions: list[str] = []
        for doc in docs:
            for item in _descriptors(doc):
                if (version := (item.get("component") or {}).get("version")) is None:
                    continue
                if version not in versions:
                    versions.append(version)
        _LOGGER.debug("Found %d versions of %s", len(versions), target)
        return versions

    async def download_resource(
        self, location: str, resource_name: str, destination: Path
    ) -> None:
        """Download a directory resource of the component version to destination."""
        Location.parse(location)
        _LOGGER.debug(
            "Downloading resource %s of %s to %s", resource_name, location, destination
        )
        await command.run(
            self._command(
                [
                    "download",
                    "resources",
                    location,
                    resource_name,
                    "--downloader",
                    DIRTREE_DOWNLOADER,
                    "--outfile",
                    str(destination),
                ]
            )
        )


def _descriptors(doc: Any) -> list[dict[str, Any]]:
    if isinstance(doc, list):
        return [item for item in doc if isinstance(item, dict)]
    if not isinstance(doc, dict):
        return []
    if isinstance(items := doc.get("items"), list):
        return [item for item in items if isinstance(item, dict)]
    return [doc]
