"""Functions available to templates.

The general purpose functions convert between structured data and text. The
component functions let a template query the component graph through a
`ComponentResolver`. They are coroutines and awaited by the template engine.

Calling a component function on a library built without a resolver is a
programming error and raises a `RuntimeError`. A failed lookup is logged and
returns `None` so the template can decide how to handle it.
"""

import base64
from collections.abc import Callable
import json
import logging
from typing import Any

import yaml

from ..component import ComponentVersion
from ..exceptions import BootstrapException
from ..image import parse_image_reference
from ..resolver import ComponentResolver

__all__ = [
    "general_functions",
    "component_functions",
]

_LOGGER = logging.getLogger(__name__)


def to_yaml(value: Any) -> str:
    """Serialize a value as YAML without the trailing newline."""
    try:
        return yaml.dump(value, sort_keys=False).removesuffix("\n")
    except yaml.YAMLError as err:
        _LOGGER.debug("Unable to serialize value as YAML: %s", err)
        return ""


def from_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


def from_json(text: str) -> Any:
    return json.loads(text)


def b64enc(text: str) -> str:
    return base64.b64encode(str(text).encode("utf-8")).decode("ascii")


def b64dec(text: str) -> str:
    return base64.b64decode(text).decode("utf-8")


def parse_image(ref: str) -> dict[str, str] | None:
    """Split an image reference into image, tag and digest."""
    try:
        return parse_image_reference(ref).as_dict()
    except BootstrapException as err:
        _LOGGER.debug("Unable to parse image reference '%s': %s", ref, err)
        return None


def general_functions() -> dict[str, Callable[..., Any]]:
    """Return the functions that do not depend on a component repository."""
    return {
        "toYaml": to_yaml,
        "fromYaml": from_yaml,
        "toJson": to_json,
        "fromJson": from_json,
        "b64enc": b64enc,
        "b64dec": b64dec,
        "parseImage": parse_image,
    }


def _split_args(
    resolver: ComponentResolver, args: tuple[Any, ...]
) -> tuple[ComponentVersion, str]:
    if len(args) == 1:
        return resolver.root, args[0]
    if len(args) == 2:
        return args[0], args[1]
    raise TypeError(f"Expected 1 or 2 arguments, got {len(args)}")


def component_functions(
    resolver: ComponentResolver | None,
) -> dict[str, Callable[..., Any]]:
    """Return the functions that query the component graph of the resolver."""

    def bound() -> ComponentResolver:
        if resolver is None:
            raise RuntimeError("Template function requires a component resolver")
        return resolver

    def get_ocm_repository() -> str:
        return bound().repository

    def get_root_component_version() -> ComponentVersion:
        return bound().root

    async def get_component_version_by_reference(
        *args: Any,
    ) -> ComponentVersion | None:
        """Find a referenced component from the root or the given parent."""
        parent, name = _split_args(bound(), args)
        _LOGGER.debug(
            "getComponentVersionByReference called with parent %s and reference %s",
            parent,
            name,
        )
        try:
            return await bound().resolve_reference(parent, name)
        except BootstrapException as err:
            _LOGGER.error(
                "Error getting component version by reference %s from %s: %s",
                name,
                parent,
                err,
            )
            return None

    async def get_component_version_for_resource(
        *args: Any,
    ) -> ComponentVersion | None:
        """Find the component owning a resource from the root or the given parent."""
        parent, name = _split_args(bound(), args)
        _LOGGER.debug(
            "getComponentVersionForResource called with parent %s and resource %s",
            parent,
            name,
        )
        try:
            return await bound().resolve_resource_owner(parent, name)
        except BootstrapException as err:
            _LOGGER.error(
                "Error getting component version for resource %s from %s: %s",
                name,
                parent,
                err,
            )
            return None

    def component_version_as_map(cv: ComponentVersion | None) -> dict[str, Any] | None:
        bound()
        if cv is None:
            return None
        return {"component": cv.to_dict()}

    def get_resource_from_component_version(
        cv: ComponentVersion, name: str
    ) -> dict[str, Any] | None:
        bound()
        if (resource := cv.get_resource(name)) is None:
            _LOGGER.error("Resource %s not found in component version %s", name, cv)
            return None
        return resource.to_dict()

    async def list_component_versions(cv: ComponentVersion) -> list[str] | None:
        try:
            return await bound().list_component_versions(cv)
        except BootstrapException as err:
            _LOGGER.error("Error listing component versions of %s: %s", cv.name, err)
            return None

    return {
        "getOCMRepository": get_ocm_repository,
        "getRootComponentVersion": get_root_component_version,
        "getComponentVersionByReference": get_component_version_by_reference,
        "getComponentVersionForResource": get_component_version_for_resource,
        "componentVersionAsMap": component_version_as_map,
        "getResourceFromComponentVersion": get_resource_from_component_version,
        "listComponentVersions": list_component_versions,
    }
