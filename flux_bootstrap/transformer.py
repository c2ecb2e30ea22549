"""Arrange the downloaded template resources into the deployment repository layout.

The Flux and openMCP template resources both contain `templates/overlays`
and `templates/resources`. They are rearranged into:

    envs/<environment>/kustomization.yaml
    envs/<environment>/root-kustomization.yaml
    envs/<environment>/fluxcd/...
    envs/<environment>/openmcp/...
    resources/kustomization.yaml
    resources/root-kustomization.yaml
    resources/fluxcd/...
    resources/openmcp/...

The result is still a tree of templates and is rendered into the repository
afterwards.
"""

import logging
from pathlib import Path
import shutil

from .kustomization import (
    FluxKustomization,
    KubernetesKustomization,
    KustomizePatch,
    flux_kustomization_patch,
    write_yaml,
)
from .resolver import ComponentResolver

__all__ = [
    "TemplateTransformer",
]

_LOGGER = logging.getLogger(__name__)

ENVS_DIR = "envs"
RESOURCES_DIR = "resources"
FLUXCD_DIR = "fluxcd"
OPENMCP_DIR = "openmcp"
TEMPLATES_DIR = "templates"
OVERLAYS_DIR = "overlays"
KUSTOMIZATION_FILE = "kustomization.yaml"
ROOT_KUSTOMIZATION_FILE = "root-kustomization.yaml"

ROOT_KUSTOMIZATION_NAME = "bootstrap"
ROOT_KUSTOMIZATION_NAMESPACE = "default"
SOURCE_NAME = "environments"
FLUX_SYSTEM = "flux-system"


def _copy_tree(src: Path, dst: Path) -> None:
    if not src.is_dir():
        _LOGGER.debug("Template directory %s does not exist, skipping", src)
        return
    shutil.copytree(src, dst, dirs_exist_ok=True)


class TemplateTransformer:
    """Downloads the template resources and rearranges them for an environment."""

    def __init__(
        self,
        resolver: ComponentResolver,
        fluxcd_template_path: str,
        openmcp_template_path: str,
        workdir: Path,
    ) -> None:
        self._resolver = resolver
        self._fluxcd_template_path = fluxcd_template_path
        self._openmcp_template_path = openmcp_template_path
        self._download_dir = workdir / "transformer" / "download"

    async def transform(self, environment: str, target_dir: Path) -> None:
        """Build the templates tree of the environment in target_dir.

        The target directory is emptied first.
        """
        self._download_dir.mkdir(parents=True, exist_ok=True)
        if target_dir.exists():
            shutil.rmtree(target_dir)
        target_dir.mkdir(parents=True)

        _LOGGER.info("Downloading template resources")
        fluxcd_download = self._download_dir / FLUXCD_DIR
        openmcp_download = self._download_dir / OPENMCP_DIR
        root = self._resolver.root
        await self._resolver.download_resource_by_path(
            root, self._fluxcd_template_path, fluxcd_download
        )
        await self._resolver.download_resource_by_path(
            root, self._openmcp_template_path, openmcp_download
        )

        _LOGGER.info("Transforming templates into deployment repository structure")
        env_dir = target_dir / ENVS_DIR / environment
        resources_dir = target_dir / RESOURCES_DIR
        for download, name in (
            (fluxcd_download, FLUXCD_DIR),
            (openmcp_download, OPENMCP_DIR),
        ):
            (env_dir / name).mkdir(parents=True, exist_ok=True)
            (resources_dir / name).mkdir(parents=True, exist_ok=True)
            _copy_tree(download / TEMPLATES_DIR / OVERLAYS_DIR, env_dir / name)
            _copy_tree(download / TEMPLATES_DIR / RESOURCES_DIR, resources_dir / name)

        await write_yaml(
            env_dir / KUSTOMIZATION_FILE,
            KubernetesKustomization(
                resources=[f"../../{RESOURCES_DIR}", OPENMCP_DIR],
                patches=[KustomizePatch(path=ROOT_KUSTOMIZATION_FILE)],
            ).to_doc(),
        )
        await write_yaml(
            env_dir / ROOT_KUSTOMIZATION_FILE,
            flux_kustomization_patch(
                ROOT_KUSTOMIZATION_NAME,
                ROOT_KUSTOMIZATION_NAMESPACE,
                f"./{ENVS_DIR}/{environment}",
            ),
        )
        await write_yaml(
            resources_dir / KUSTOMIZATION_FILE,
            KubernetesKustomization(resources=[ROOT_KUSTOMIZATION_FILE]).to_doc(),
        )
        await write_yaml(
            resources_dir / ROOT_KUSTOMIZATION_FILE,
            FluxKustomization(
                name=ROOT_KUSTOMIZATION_NAME,
                namespace=ROOT_KUSTOMIZATION_NAMESPACE,
                path="<templated>",
                source_name=SOURCE_NAME,
                source_namespace=FLUX_SYSTEM,
                depends_on=[(FLUX_SYSTEM, FLUX_SYSTEM)],
            ).to_doc(),
        )
