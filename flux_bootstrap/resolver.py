"""Library for resolving component versions reachable from a root component.

The resolver walks the reference graph of component versions depth first. A
lookup first inspects the parent itself and then each of its references in
declaration order, recursing into a child before moving on to its siblings.
When several components match, the first one reached in this order wins. A
reference that cannot be fetched is logged and skipped.

Component versions are fetched through an `OcmClient` every time they are
needed; nothing is cached between lookups.
"""

from collections.abc import Awaitable, Callable
import logging
from pathlib import Path
from typing import Protocol

from .component import ComponentReference, ComponentVersion, Location
from .exceptions import (
    ComponentNotFoundError,
    InputException,
    OcmException,
    ReferenceCycleError,
)

__all__ = [
    "ComponentClient",
    "ComponentResolver",
    "split_resource_path",
]

_LOGGER = logging.getLogger(__name__)

Identity = tuple[str, str]
Match = Callable[[ComponentVersion], Awaitable[ComponentVersion | None]]


class ComponentClient(Protocol):
    """Client used by the resolver to talk to a component repository."""

    async def get_component_version(self, location: str) -> ComponentVersion:
        """Fetch the component version at the location."""

    async def list_component_versions(self, location: str) -> list[str]:
        """List the versions of the component at the location."""

    async def download_resource(
        self, location: str, resource_name: str, destination: Path
    ) -> None:
        """Download a directory resource to the destination."""


def split_resource_path(path: str) -> tuple[list[str], str]:
    """Split `ref1/.../refN/name` into the reference chain and final name."""
    segments = path.strip().split("/")
    if not segments[-1] or any(not segment for segment in segments):
        raise InputException(
            "Resource path must be a name or reference names and a name "
            f"separated by slashes (ref1/.../refN/name): '{path}'"
        )
    return segments[:-1], segments[-1]


class ComponentResolver:
    """Resolves references and resources in the graph below a root component."""

    def __init__(
        self,
        root_location: str,
        templates_path: str,
        client: ComponentClient,
    ) -> None:
        """Initialize ComponentResolver.

        The root location is `<repository>//<component>:<version>` and the
        templates path is `ref1/.../refN/resource`, resolved from the root.
        """
        self._root_location = root_location
        self._templates_path = templates_path
        self._client = client
        self._repository: str | None = None
        self._root: ComponentVersion | None = None
        self._templates_component: ComponentVersion | None = None
        self._templates_resource: str | None = None

    @property
    def client(self) -> ComponentClient:
        """The client used to fetch component versions."""
        return self._client

    @property
    def repository(self) -> str:
        """The repository holding the root component."""
        if self._repository is None:
            raise RuntimeError("ComponentResolver has not been initialized")
        return self._repository

    @property
    def root(self) -> ComponentVersion:
        """The root component version."""
        if self._root is None:
            raise RuntimeError("ComponentResolver has not been initialized")
        return self._root

    @property
    def templates_component(self) -> ComponentVersion:
        """The component version that owns the templates resource."""
        if self._templates_component is None:
            raise RuntimeError("ComponentResolver has not been initialized")
        return self._templates_component

    @property
    def templates_resource(self) -> str:
        """Name of the templates resource within its component."""
        if self._templates_resource is None:
            raise RuntimeError("ComponentResolver has not been initialized")
        return self._templates_resource

    async def initialize(self) -> None:
        """Fetch the root component and locate the templates resource."""
        location = Location.parse(self._root_location)
        self._repository = location.repository
        _LOGGER.info("Fetching root component version %s", self._root_location)
        self._root = await self._client.get_component_version(str(location))
        self._templates_component, self._templates_resource = await self.resolve_path(
            self._root, self._templates_path
        )
        _LOGGER.debug(
            "Templates resource %s found in component version %s",
            self._templates_resource,
            self._templates_component,
        )

    def location_of(self, cv: ComponentVersion) -> str:
        """Return the location of a component version in the root repository."""
        return str(Location(self.repository, cv.name, cv.version))

    def _reference_location(self, reference: ComponentReference) -> str:
        return str(
            Location(self.repository, reference.component_name, reference.version)
        )

    async def get_referenced_component_version(
        self, parent: ComponentVersion, ref_name: str
    ) -> ComponentVersion:
        """Fetch the component version of a direct reference of the parent."""
        if (reference := parent.get_reference(ref_name)) is None:
            raise ComponentNotFoundError(
                "component reference", ref_name, parent.name, recursive=False
            )
        return await self._client.get_component_version(
            self._reference_location(reference)
        )

    async def resolve_reference(
        self, parent: ComponentVersion, ref_name: str
    ) -> ComponentVersion:
        """Find the component version behind the first reference named ref_name."""

        async def match(cv: ComponentVersion) -> ComponentVersion | None:
            if cv.get_reference(ref_name) is None:
                return None
            return await self.get_referenced_component_version(cv, ref_name)

        if (found := await self._search(parent, match)) is None:
            raise ComponentNotFoundError("component reference", ref_name, parent.name)
        return found

    async def resolve_resource_owner(
        self, parent: ComponentVersion, resource_name: str
    ) -> ComponentVersion:
        """Find the first component version that owns a resource named resource_name."""

        async def match(cv: ComponentVersion) -> ComponentVersion | None:
            return cv if cv.get_resource(resource_name) is not None else None

        if (found := await self._search(parent, match)) is None:
            raise ComponentNotFoundError("resource", resource_name, parent.name)
        return found

    async def resolve_path(
        self, parent: ComponentVersion, path: str
    ) -> tuple[ComponentVersion, str]:
        """Resolve `ref1/.../refN/name` hop by hop starting at parent.

        Returns the component version reached through the reference chain and
        the final segment of the path.
        """
        references, name = split_resource_path(path)
        cv = parent
        for ref_name in references:
            cv = await self.resolve_reference(cv, ref_name)
        return cv, name

    async def _search(
        self, parent: ComponentVersion, match: Match
    ) -> ComponentVersion | None:
        explored: set[Identity] = set()
        return await self._visit(parent, match, [parent.identity], explored)

    async def _visit(
        self,
        cv: ComponentVersion,
        match: Match,
        path: list[Identity],
        explored: set[Identity],
    ) -> ComponentVersion | None:
        if (found := await match(cv)) is not None:
            return found
        for reference in cv.references:
            try:
                child = await self._client.get_component_version(
                    self._reference_location(reference)
                )
            except OcmException as err:
                _LOGGER.warning(
                    "Skipping reference %s of component version %s: %s",
                    reference.name,
                    cv,
                    err,
                )
                continue
            if child.identity in path:
                cycle = path[path.index(child.identity) :] + [child.identity]
                raise ReferenceCycleError([f"{name}:{ver}" for name, ver in cycle])
            if child.identity in explored:
                continue
            found = await self._visit(child, match, path + [child.identity], explored)
            if found is not None:
                return found
        explored.add(cv.identity)
        return None

    async def download_directory_resource(
        self, cv: ComponentVersion, resource_name: str, destination: Path
    ) -> None:
        """Download a directory resource of the component version."""
        await self._client.download_resource(
            self.location_of(cv), resource_name, destination
        )

    async def download_templates_resource(self, destination: Path) -> None:
        """Download the templates resource found during initialization."""
        await self.download_directory_resource(
            self.templates_component, self.templates_resource, destination
        )

    async def download_resource_by_path(
        self, parent: ComponentVersion, path: str, destination: Path
    ) -> None:
        """Resolve `ref1/.../refN/resource` from parent and download the resource."""
        cv, resource_name = await self.resolve_path(parent, path)
        await self.download_directory_resource(cv, resource_name, destination)

    async def list_component_versions(self, cv: ComponentVersion) -> list[str]:
        """List all versions of the component of cv known to the repository."""
        return await self._client.list_component_versions(self.location_of(cv))
