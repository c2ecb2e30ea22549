"""Representation of component versions published in an OCM repository.

A component version is an immutable, versioned bundle of named resources and
references to other component versions. The bootstrap only needs a small
subset of the descriptor returned by `ocm get componentversion --output yaml`
so everything else in the document is ignored while parsing.
"""

from dataclasses import dataclass, field
import logging
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException, LocationFormatError

__all__ = [
    "Access",
    "Resource",
    "ComponentReference",
    "ComponentVersion",
    "Location",
]

_LOGGER = logging.getLogger(__name__)

LOCATION_SEPARATOR = "//"
OCI_IMAGE_TYPE = "ociImage"
DIRECTORY_TYPE = "directoryTree"


@dataclass(frozen=True)
class Location:
    """Address of a component version in a repository.

    Locations are written as `<repository>//<component-name>:<version>`. The
    version may be omitted when addressing the latest version of a component.
    """

    repository: str
    name: str
    version: str = ""

    @classmethod
    def parse(cls, location: str) -> "Location":
        """Parse a location string, raising a LocationFormatError if invalid."""
        repository, sep, component = location.strip().rpartition(LOCATION_SEPARATOR)
        if not sep or not repository or not component:
            raise LocationFormatError(
                f"Invalid component location '{location}': expected "
                f"'<repository>{LOCATION_SEPARATOR}<component>:<version>'"
            )
        name, sep, version = component.partition(":")
        if not name or (sep and not version):
            raise LocationFormatError(
                f"Invalid component location '{location}': missing component "
                "name or version"
            )
        return cls(repository=repository, name=name, version=version)

    @property
    def component(self) -> str:
        """The `<component-name>[:<version>]` part of the location."""
        if self.version:
            return f"{self.name}:{self.version}"
        return self.name

    def __str__(self) -> str:
        return f"{self.repository}{LOCATION_SEPARATOR}{self.component}"


@dataclass(frozen=True)
class _DescriptorBase(DataClassDictMixin):

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True)
class Access(_DescriptorBase):
    """How the content of a resource can be retrieved."""

    type: str = ""
    """The access method type (e.g. ociArtifact, localBlob)."""

    image_reference: str | None = field(
        metadata=field_options(alias="imageReference"), default=None
    )
    """The OCI image reference for image resources."""

    local_reference: str | None = field(
        metadata=field_options(alias="localReference"), default=None
    )
    """The blob digest for resources stored alongside the component."""

    media_type: str | None = field(
        metadata=field_options(alias="mediaType"), default=None
    )


@dataclass(frozen=True)
class Resource(_DescriptorBase):
    """A named artifact contained in a component version."""

    name: str
    """The name of the resource, unique within its component version."""

    version: str = ""

    type: str = ""
    """The resource type, ociImage for container images."""

    labels: list[dict[str, Any]] = field(default_factory=list)

    access: Access = field(default_factory=Access)

    @property
    def is_image(self) -> bool:
        """Return true if the resource is a container image."""
        return self.type == OCI_IMAGE_TYPE

    @property
    def image_reference(self) -> str | None:
        """The image reference of the resource, if accessible as an image."""
        return self.access.image_reference


@dataclass(frozen=True)
class ComponentReference(_DescriptorBase):
    """A named pointer from one component version to another."""

    name: str
    """The reference name, unique within the parent component version."""

    component_name: str = field(metadata=field_options(alias="componentName"))
    """The name of the referenced component."""

    version: str = ""
    """The version of the referenced component."""


def _drop_none(doc: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in doc.items() if value is not None}


@dataclass(frozen=True)
class ComponentVersion(_DescriptorBase):
    """A single version of a component and its contents."""

    name: str
    """The component name, e.g. github.com/openmcp-project/openmcp."""

    version: str
    """The component version."""

    references: list[ComponentReference] = field(
        metadata=field_options(alias="componentReferences"), default_factory=list
    )
    """References to other component versions, in descriptor order."""

    resources: list[Resource] = field(default_factory=list)
    """Resources of the component version, in descriptor order."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ComponentVersion":
        """Parse a ComponentVersion from a component descriptor document."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid component descriptor: {doc}")
        if "items" in doc and isinstance(doc["items"], list):
            if len(doc["items"]) != 1:
                raise InputException(
                    f"Expected exactly one component descriptor, found {len(doc['items'])}"
                )
            doc = doc["items"][0]
        if not (component := doc.get("component")):
            raise InputException(f"Invalid component descriptor missing component: {doc}")
        if not component.get("name"):
            raise InputException(
                f"Invalid component descriptor missing component.name: {doc}"
            )
        component = _drop_none(component)
        component["resources"] = [
            _drop_none(resource) for resource in component.get("resources", [])
        ]
        try:
            return cls.from_dict(component)
        except (MissingField, InvalidFieldValue) as err:
            raise InputException(f"Invalid component descriptor: {err}") from err

    @property
    def identity(self) -> tuple[str, str]:
        """The (name, version) pair that identifies this component version."""
        return (self.name, self.version)

    def __str__(self) -> str:
        return f"{self.name}:{self.version}"

    def get_reference(self, name: str) -> ComponentReference | None:
        """Return the direct reference with the specified name, if any."""
        for reference in self.references:
            if reference.name == name:
                return reference
        return None

    def get_resource(self, name: str) -> Resource | None:
        """Return the resource with the specified name, if any."""
        for resource in self.resources:
            if resource.name == name:
                return resource
        return None

    def image_resources(self) -> list[Resource]:
        """Return all resources that are container images."""
        return [resource for resource in self.resources if resource.is_image]
