"""Manifests of the providers deployed by the openMCP operator.

Each configured provider is resolved to its component below the root
component, named `cluster-provider-<name>`, `service-provider-<name>` or
`platform-service-<name>`. The first container image of that component is
rendered into the manifest template of the provider kind and written to
`resources/openmcp/<kind directory>/<name>.yaml`.
"""

from importlib import resources
import logging
from pathlib import Path
import shutil
from typing import Any

from .component import ComponentVersion
from .config import Provider, ProviderKind
from .exceptions import InputException
from .resolver import ComponentResolver
from .template import MissingKeyPolicy, TemplateRenderer, TemplateSink

__all__ = [
    "provider_template",
    "provider_values",
    "apply_providers",
]

_LOGGER = logging.getLogger(__name__)

OPENMCP_RESOURCES = Path("resources/openmcp")

TEMPLATE_FILES = {
    ProviderKind.CLUSTER: "cluster_provider.yaml",
    ProviderKind.SERVICE: "service_provider.yaml",
    ProviderKind.PLATFORM: "platform_service.yaml",
}


def provider_template(kind: str) -> str:
    """Return the manifest template bundled for the provider kind."""
    return (
        resources.files(__package__)
        .joinpath("templates", TEMPLATE_FILES[kind])
        .read_text(encoding="utf-8")
    )


def provider_values(
    provider: Provider, image: str, image_pull_secrets: list[str]
) -> dict[str, Any]:
    """Return the template input of a provider manifest."""
    return {
        "values": {
            "name": provider.name,
            "image": {
                "location": image,
                "imagePullSecrets": list(image_pull_secrets),
            },
            "config": provider.config.value if provider.config else {},
        }
    }


def _first_image(cv: ComponentVersion) -> str:
    images = cv.image_resources()
    if not images or not images[0].image_reference:
        raise InputException(f"image resource not found for component {cv.name}")
    return images[0].image_reference


async def apply_providers(
    providers: list[Provider],
    image_pull_secrets: list[str],
    resolver: ComponentResolver,
    renderer: TemplateRenderer,
    sink: TemplateSink,
    worktree: Path,
) -> list[Path]:
    """Render the manifest of every provider into the sink.

    The provider directories are removed first so that providers dropped from
    the configuration disappear from the repository. Returns the paths
    written, relative to the working tree.
    """
    for directory in ProviderKind.DIRECTORY.values():
        target = worktree / OPENMCP_RESOURCES / directory
        if target.exists():
            _LOGGER.debug("Removing %s", target)
            shutil.rmtree(target)
        target.mkdir(parents=True)

    written = []
    for provider in providers:
        cv = await resolver.resolve_reference(resolver.root, provider.component_name)
        image = _first_image(cv)
        path = OPENMCP_RESOURCES / provider.manifest_path
        _LOGGER.debug(
            "Creating provider %s with image %s in path %s", provider.name, image, path
        )
        content = await renderer.render(
            str(path),
            provider_template(provider.kind),
            provider_values(provider, image, image_pull_secrets),
            MissingKeyPolicy.ERROR,
        )
        await sink.write(path, content)
        await sink.stage(path)
        written.append(path)
    return written
