"""Helper functions for working with container image references."""

from dataclasses import dataclass
import logging
from typing import Any

from .component import ComponentVersion
from .exceptions import InputException

__all__ = [
    "ImageReference",
    "parse_image_reference",
    "component_image",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageReference:
    """A container image split into name, tag and digest.

    The tag and digest are empty strings when the reference does not carry
    them.
    """

    name: str
    tag: str = ""
    digest: str = ""

    def as_dict(self) -> dict[str, Any]:
        """Return the fields as exposed to templates."""
        return {"image": self.name, "tag": self.tag, "digest": self.digest}

    def __str__(self) -> str:
        ref = self.name
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref


def parse_image_reference(ref: str) -> ImageReference:
    """Parse `host/repo/name[:tag][@digest]` into its parts.

    A colon is only treated as a tag separator when it follows the last slash
    so that registry ports such as `localhost:5000/name` are kept in the name.
    """
    ref = ref.strip()
    name, sep, digest = ref.partition("@")
    if not name or (sep and not digest):
        raise InputException(f"Invalid image reference '{ref}'")
    tag = ""
    colon = name.rfind(":")
    if colon > name.rfind("/"):
        name, tag = name[:colon], name[colon + 1 :]
        if not name or not tag:
            raise InputException(f"Invalid image reference '{ref}'")
    return ImageReference(name=name, tag=tag, digest=digest)


def component_image(cv: ComponentVersion, resource_name: str) -> ImageReference:
    """Return the parsed image reference of a resource of the component version."""
    if (resource := cv.get_resource(resource_name)) is None:
        raise InputException(
            f"Resource {resource_name} not found in component version {cv}"
        )
    if not (image_reference := resource.image_reference):
        raise InputException(
            f"Image reference of resource {resource_name} not found in {cv}"
        )
    _LOGGER.debug("Image of %s in %s: %s", resource_name, cv, image_reference)
    return parse_image_reference(image_reference)
