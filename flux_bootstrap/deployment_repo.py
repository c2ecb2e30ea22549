"""Bootstrap a GitOps deployment repository from an openMCP component.

The `DeploymentRepoManager` runs a fixed sequence of phases in a temporary
workspace:

- initialize: resolve the root component, arrange the template resources for
  the environment, clone the deployment repository and check out the branch
- apply templates: render the templates tree into the repository
- apply providers: render one manifest per configured provider
- apply custom resource definitions: download the CRDs meant for the
  platform cluster
- apply extra manifests: copy manifests supplied by the user
- update resources kustomization: reference all of the above
- commit and push the changes
- build the environment overlay and apply the Flux Kustomizations

Each phase failure is raised as a `PhaseError` naming the phase. The
workspace is removed when the run ends, successful or not.

Example usage:
```
config = await read_config(Path("bootstrap.yaml"))
manager = DeploymentRepoManager(config, DeploymentRepoOptions(git_config=...))
await manager.run()
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
import shutil
import tempfile
from typing import Any

import aiofiles
import aiofiles.os
import git
import yaml

from . import kustomize, repo
from .cluster import ClusterClient, KubectlClient, apply_objects
from .component import ComponentVersion
from .config import BootstrapConfig, ProviderKind
from .context import phase_context
from .exceptions import BootstrapException, InputException
from .git_config import GitConfig, read_git_config
from .kustomization import is_flux_kustomization, read_kustomization, write_yaml
from .ocm import OcmClient
from .providers import OPENMCP_RESOURCES, apply_providers
from .resolver import ComponentClient, ComponentResolver
from .template import TemplateRenderer, render_directory
from .template_input import TemplateInput, input_formatter, read_user_patches
from .transformer import TemplateTransformer

__all__ = [
    "DeploymentRepoOptions",
    "DeploymentRepoManager",
]

_LOGGER = logging.getLogger(__name__)

OPENMCP_OPERATOR_COMPONENT = "openmcp-operator"
FLUXCD_SOURCE_CONTROLLER = "fluxcd-source-controller"
CRDS_DIR = "crds"
EXTRA_DIR = "extra"
MANIFEST_SUFFIXES = (".yaml", ".yml")
CLUSTER_LABEL = "openmcp.cloud/cluster"
PLATFORM_CLUSTER = "platform"
COMMIT_MESSAGE = "apply templates"


@dataclass
class DeploymentRepoOptions:
    """Files and settings of a run that are not part of the configuration."""

    git_config: Path
    """Credentials for the deployment repository."""

    ocm_config: Path | None = None
    """Configuration passed to the ocm tool."""

    extra_manifests: Path | None = None
    """Directory of manifests copied into the repository as they are."""

    patches: Path | None = None
    """Template of kustomize patches exposed as `userKustomizationPatches`."""

    kubeconfig: Path | None = None
    """Cluster the Flux Kustomizations are applied to."""

    workdir_root: Path | None = None
    """Parent of the temporary workspace, the system default when unset."""


def _is_platform_manifest(path: Path) -> bool:
    with path.open() as manifest_file:
        try:
            docs = [doc for doc in yaml.safe_load_all(manifest_file) if doc]
        except yaml.YAMLError as err:
            raise InputException(f"failed to unmarshal CRD file {path}: {err}") from err
    if not docs or not isinstance(docs[0], dict):
        return False
    labels = (docs[0].get("metadata") or {}).get("labels") or {}
    return labels.get(CLUSTER_LABEL) == PLATFORM_CLUSTER


def _manifest_files(directory: Path) -> list[Path]:
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix in MANIFEST_SUFFIXES
    )


@dataclass
class _State:
    """Values produced by one phase and consumed by later ones."""

    workdir: Path | None = None
    resolver: ComponentResolver | None = None
    renderer: TemplateRenderer | None = None
    git_config: GitConfig | None = None
    deployment: git.Repo | None = None
    operator: ComponentVersion | None = None
    fluxcd: ComponentVersion | None = None
    crd_files: list[str] = field(default_factory=list)
    extra_manifests: list[str] = field(default_factory=list)


class DeploymentRepoManager:
    """Synthesizes the deployment repository of one environment."""

    def __init__(
        self,
        config: BootstrapConfig,
        options: DeploymentRepoOptions,
        client: ComponentClient | None = None,
        cluster: ClusterClient | None = None,
    ) -> None:
        """Initialize DeploymentRepoManager.

        The component client defaults to the ocm tool and the cluster client to
        kubectl with the kubeconfig of the options.
        """
        self._config = config
        self._options = options
        self._client = client or OcmClient(options.ocm_config)
        self._cluster = cluster
        self._state = _State()

    @property
    def workdir(self) -> Path:
        if self._state.workdir is None:
            raise RuntimeError("DeploymentRepoManager has not been initialized")
        return self._state.workdir

    @property
    def templates_dir(self) -> Path:
        """Directory holding the templates tree of the environment."""
        return self.workdir / "templates"

    @property
    def repo_dir(self) -> Path:
        """Directory holding the clone of the deployment repository."""
        return self.workdir / "repo"

    @property
    def resolver(self) -> ComponentResolver:
        if self._state.resolver is None:
            raise RuntimeError("DeploymentRepoManager has not been initialized")
        return self._state.resolver

    @property
    def renderer(self) -> TemplateRenderer:
        if self._state.renderer is None:
            raise RuntimeError("DeploymentRepoManager has not been initialized")
        return self._state.renderer

    @property
    def deployment(self) -> git.Repo:
        if self._state.deployment is None:
            raise RuntimeError("DeploymentRepoManager has not been initialized")
        return self._state.deployment

    @property
    def crd_files(self) -> list[str]:
        """CRD manifests kept, relative to resources/openmcp."""
        return list(self._state.crd_files)

    @property
    def extra_manifests(self) -> list[str]:
        """Names of the extra manifests copied into the repository."""
        return list(self._state.extra_manifests)

    async def initialize(self) -> None:
        """Prepare the workspace, the templates tree and the repository clone."""
        root = self._options.workdir_root
        self._state.workdir = Path(
            tempfile.mkdtemp(prefix="flux-bootstrap-", dir=str(root) if root else None)
        )
        _LOGGER.debug("Created working dir: %s", self._state.workdir)

        component = self._config.component
        _LOGGER.info("Downloading component %s", component.location)
        resolver = ComponentResolver(
            component.location, component.fluxcd_template_resource_path, self._client
        )
        await resolver.initialize()
        self._state.resolver = resolver
        self._state.renderer = TemplateRenderer(
            resolver=resolver, formatter=input_formatter()
        )

        transformer = TemplateTransformer(
            resolver,
            component.fluxcd_template_resource_path,
            component.openmcp_operator_template_resource_path,
            self.workdir,
        )
        await transformer.transform(self._config.environment, self.templates_dir)

        _LOGGER.info("Fetching %s component version", OPENMCP_OPERATOR_COMPONENT)
        self._state.operator = await resolver.resolve_reference(
            resolver.root, OPENMCP_OPERATOR_COMPONENT
        )
        self._state.fluxcd = await resolver.resolve_resource_owner(
            resolver.root, FLUXCD_SOURCE_CONTROLLER
        )

        self._state.git_config = await read_git_config(self._options.git_config)
        env = self._state.git_config.environment(self.workdir)

        repository = self._config.repository
        self._state.deployment = await repo.clone_repo(
            repository.url, self.repo_dir, env
        )
        _LOGGER.info("Checking out or creating branch %s", repository.branch)
        await repo.checkout_or_create_branch(self.deployment, repository.branch)

    async def apply_templates(self) -> list[Path]:
        """Render the templates tree into the repository."""
        _LOGGER.info(
            "Applying templates from %s and %s to deployment repository",
            self._config.component.fluxcd_template_resource_path,
            self._config.component.openmcp_operator_template_resource_path,
        )
        if self._state.operator is None or self._state.fluxcd is None:
            raise RuntimeError("DeploymentRepoManager has not been initialized")

        template_input = TemplateInput.from_config(self._config)
        template_input.add_operator(self._config, self._state.operator)
        if self._options.patches:
            template_input.add_user_patches(
                await read_user_patches(
                    self._options.patches, template_input, self.renderer
                )
            )
        template_input.add_fluxcd_images(self._state.fluxcd)

        return await render_directory(
            self.templates_dir,
            template_input.wrapped(),
            repo.GitWorktreeSink(self.deployment),
            self.renderer,
        )

    async def apply_providers(self) -> list[Path]:
        """Render the manifest of every configured provider."""
        _LOGGER.info(
            "Templating providers: %s",
            ", ".join(f"{p.kind}/{p.name}" for p in self._config.providers) or "none",
        )
        return await apply_providers(
            self._config.providers,
            self._config.image_pull_secrets,
            self.resolver,
            self.renderer,
            repo.GitWorktreeSink(self.deployment),
            self.repo_dir,
        )

    async def _download_crds(self, cv: ComponentVersion, target: Path) -> None:
        _, sep, short_name = cv.name.rpartition("/")
        if not sep:
            raise InputException(f"invalid component name: {cv.name}")
        resource_name = f"{short_name}-crds"
        _LOGGER.debug(
            "Applying CRDs for component %s from resource %s", cv.name, resource_name
        )
        await self.resolver.download_directory_resource(cv, resource_name, target)

    async def apply_custom_resource_definitions(self) -> list[str]:
        """Download the CRDs of the operator and the providers.

        Only manifests labelled for the platform cluster are kept. A provider
        without CRDs is logged and skipped.
        """
        if self._state.operator is None:
            _LOGGER.info(
                "No %s component version found, skipping CRD application",
                OPENMCP_OPERATOR_COMPONENT,
            )
            return []
        crd_dir = self.repo_dir / OPENMCP_RESOURCES / CRDS_DIR
        _LOGGER.info("Applying Custom Resource Definitions to deployment repository")
        await aiofiles.os.makedirs(crd_dir, exist_ok=True)

        await self._download_crds(self._state.operator, crd_dir)
        resolver = self.resolver
        for provider in self._config.providers:
            cv = await resolver.resolve_reference(resolver.root, provider.component_name)
            try:
                await self._download_crds(cv, crd_dir)
            except BootstrapException as err:
                _LOGGER.warning(
                    "Failed to apply CRDs for %s %s: %s", provider.kind, provider.name, err
                )

        kept = []
        for path in _manifest_files(crd_dir):
            if _is_platform_manifest(path):
                _LOGGER.debug("Added CRD file: %s", path.name)
                kept.append(f"{CRDS_DIR}/{path.name}")
            else:
                _LOGGER.debug("Removing CRD file %s not meant for the platform", path.name)
                path.unlink()
        self._state.crd_files = kept
        await repo.stage(self.deployment, OPENMCP_RESOURCES / CRDS_DIR)
        return kept

    async def apply_extra_manifests(self) -> list[str]:
        """Copy the manifests of the extra manifest directory into the repository."""
        if not (source := self._options.extra_manifests):
            _LOGGER.info("No extra manifest directory specified, skipping")
            return []
        _LOGGER.info("Applying extra manifests from %s", source)
        if not source.is_dir():
            raise InputException(f"extra manifest directory {source} does not exist")
        target = self.repo_dir / OPENMCP_RESOURCES / EXTRA_DIR
        await aiofiles.os.makedirs(target, exist_ok=True)
        names = []
        for path in _manifest_files(source):
            async with aiofiles.open(path, mode="rb") as manifest_file:
                content = await manifest_file.read()
            async with aiofiles.open(target / path.name, mode="wb") as out:
                await out.write(content)
            await repo.stage(self.deployment, OPENMCP_RESOURCES / EXTRA_DIR / path.name)
            names.append(path.name)
        self._state.extra_manifests = names
        return names

    async def update_resources_kustomization(self) -> list[str]:
        """Reference the CRDs, providers and extra manifests from resources/openmcp."""
        files = list(self._state.crd_files)
        for kind in ProviderKind.ALL:
            files.extend(
                provider.manifest_path for provider in self._config.providers_of(kind)
            )
        files.extend(f"{EXTRA_DIR}/{name}" for name in self._state.extra_manifests)

        path = self.repo_dir / OPENMCP_RESOURCES / "kustomization.yaml"
        kustomization = await read_kustomization(path)
        _LOGGER.debug("Adding files to resources root kustomization: %s", files)
        kustomization.add_resources(files)
        await write_yaml(path, kustomization.to_doc())
        await repo.stage(self.deployment, OPENMCP_RESOURCES)
        return kustomization.resources

    async def commit_and_push_changes(self, message: str = COMMIT_MESSAGE) -> None:
        """Commit the staged changes and push them to the branch."""
        _LOGGER.info("Committing and pushing changes to deployment repository")
        await repo.commit_changes(self.deployment, message)
        await repo.push_repo(self.deployment, self._config.repository.branch)

    async def run_overlay_build(self) -> list[dict[str, Any]]:
        """Build the environment overlay into the list of objects."""
        path = self.repo_dir / "envs" / self._config.environment
        _LOGGER.info("Running kustomize on %s", path)
        return await kustomize.build(path).objects()

    async def apply_to_cluster(
        self, manifests: list[dict[str, Any]], sync_only: bool = True
    ) -> None:
        """Apply the manifests, only the Flux Kustomizations when sync_only is set."""
        if sync_only:
            manifests = [doc for doc in manifests if is_flux_kustomization(doc)]
        if self._cluster is None:
            self._cluster = KubectlClient(self._options.kubeconfig)
        await apply_objects(self._cluster, manifests)

    def cleanup(self) -> None:
        """Remove the workspace."""
        if (workdir := self._state.workdir) is None:
            return
        _LOGGER.debug("Removing working dir: %s", workdir)
        try:
            shutil.rmtree(workdir)
        except OSError as err:
            _LOGGER.warning("Failed to remove working dir %s: %s", workdir, err)

    async def run(
        self, push: bool = True, apply: bool = True, print_manifests: bool = False
    ) -> list[dict[str, Any]]:
        """Run all phases in order and return the objects of the overlay build.

        The overlay is only built when the objects are applied or printed.
        """
        manifests: list[dict[str, Any]] = []
        try:
            with phase_context("initialize deployment repository"):
                await self.initialize()
            with phase_context("apply templates"):
                await self.apply_templates()
            with phase_context("apply providers"):
                await self.apply_providers()
            with phase_context("apply custom resource definitions"):
                await self.apply_custom_resource_definitions()
            with phase_context("apply extra manifests"):
                await self.apply_extra_manifests()
            with phase_context("update resources kustomization"):
                await self.update_resources_kustomization()
            if push:
                with phase_context("commit and push changes"):
                    await self.commit_and_push_changes()
            if apply or print_manifests:
                with phase_context("run kustomize"):
                    manifests = await self.run_overlay_build()
            if print_manifests:
                print(yaml.dump_all(manifests, sort_keys=False), end="")
            if apply:
                with phase_context("apply to cluster"):
                    await self.apply_to_cluster(manifests)
        finally:
            self.cleanup()
        return manifests
