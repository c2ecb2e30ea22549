"""The input the deployment repository templates are rendered against.

Templates see the input below the `Values` key, for example
`{{ Values.openmcpOperator.image }}` or `{{ Values.images.sourceController.tag }}`.
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml

from .component import ComponentVersion
from .config import BootstrapConfig
from .exceptions import InputException
from .image import component_image, parse_image_reference
from .template import TemplateInputFormatter, TemplateRenderer

__all__ = [
    "FLUXCD_IMAGES",
    "SENSITIVE_KEYS",
    "TemplateInput",
    "input_formatter",
    "operator_image",
    "read_user_patches",
]

_LOGGER = logging.getLogger(__name__)

VALUES_KEY = "Values"
USER_PATCHES_TEMPLATE = "userPatches"

FLUXCD_IMAGES = {
    "sourceController": "fluxcd-source-controller",
    "kustomizeController": "fluxcd-kustomize-controller",
    "helmController": "fluxcd-helm-controller",
    "notificationController": "fluxcd-notification-controller",
    "imageReflectorController": "fluxcd-image-reflector-controller",
    "imageAutomationController": "fluxcd-image-automation-controller",
}
"""Template input key of each Flux controller and the resource holding its image."""

SENSITIVE_KEYS = ("config",)
"""Keys whose values are opaque provider or operator configuration and may hold
credentials. They are redacted wherever the input is dumped in an error."""


@dataclass
class TemplateInput:
    """Builder for the template input of a bootstrap run."""

    values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: BootstrapConfig) -> "TemplateInput":
        """Return the input derived from the configuration alone."""
        environment = config.environment
        values: dict[str, Any] = {
            "user": config.template_input,
            "fluxCDEnvPath": f"./envs/{environment}/fluxcd",
            "gitRepoEnvBranch": config.repository.branch,
            "fluxCDResourcesPath": "../../../resources/fluxcd",
            "openMCPResourcesPath": "../../../resources/openmcp",
            "git": {
                "repoUrl": config.repository.url,
                "mainBranch": config.repository.branch,
            },
            "images": {},
        }
        if config.image_pull_secrets:
            values["imagePullSecrets"] = [
                {"name": secret} for secret in config.image_pull_secrets
            ]
        return cls(values=values)

    def add_operator(
        self, config: BootstrapConfig, operator: ComponentVersion
    ) -> None:
        """Add the image and configuration of the openMCP operator."""
        image = operator_image(operator)
        self.values["openmcpOperator"] = {
            "version": operator.version,
            **image,
            "imagePullSecrets": list(config.image_pull_secrets),
            "environment": config.environment,
            "config": config.operator_config.value,
        }

    def add_image(self, cv: ComponentVersion, resource_name: str, key: str) -> None:
        """Add the image of a resource of the component version under images.<key>."""
        image = component_image(cv, resource_name)
        self.values["images"][key] = {"version": image.tag, **image.as_dict()}

    def add_fluxcd_images(self, fluxcd: ComponentVersion) -> None:
        for key, resource_name in FLUXCD_IMAGES.items():
            self.add_image(fluxcd, resource_name, key)

    def add_user_patches(self, patches: Any) -> None:
        self.values["userKustomizationPatches"] = patches

    def wrapped(self) -> dict[str, Any]:
        """Return the input as seen by the templates."""
        return {VALUES_KEY: self.values}


def operator_image(operator: ComponentVersion) -> dict[str, str]:
    """Return image, tag and digest of the first image of the operator component."""
    images = operator.image_resources()
    if not images or not images[0].image_reference:
        raise InputException(
            f"no image resource found for openmcp-operator component version {operator}"
        )
    return parse_image_reference(images[0].image_reference).as_dict()


async def read_user_patches(
    path: Path, template_input: TemplateInput, renderer: TemplateRenderer
) -> Any:
    """Render the patches file and return the value of its `patches` key."""
    try:
        async with aiofiles.open(path) as patches_file:
            raw = await patches_file.read()
    except OSError as err:
        raise InputException(f"failed to read patches file {path}: {err}") from err
    rendered = await renderer.render(
        USER_PATCHES_TEMPLATE, raw, template_input.wrapped()
    )
    try:
        doc = yaml.safe_load(rendered)
    except yaml.YAMLError as err:
        raise InputException(
            f"failed to unmarshal user patches from file {path}: {err}"
        ) from err
    if not isinstance(doc, dict) or doc.get("patches") is None:
        raise InputException(f"no patches found in user patches file {path}")
    _LOGGER.debug("Read user kustomization patches from %s", path)
    return doc["patches"]


def input_formatter() -> TemplateInputFormatter:
    """Return the formatter for template inputs dumped in error messages."""
    return TemplateInputFormatter(pretty=True, sensitive_keys=SENSITIVE_KEYS)
