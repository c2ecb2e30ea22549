"""In-memory stand-ins for the component repository and the cluster."""

import copy
from pathlib import Path
from typing import Any

import git

from flux_bootstrap.cluster import ClusterClient, ObjectKey
from flux_bootstrap.component import ComponentVersion, Location
from flux_bootstrap.exceptions import OcmException

REPOSITORY = "ghcr.io/openmcp"


def component(
    name: str,
    version: str,
    references: list[tuple[str, str, str]] | None = None,
    resources: list[dict[str, Any]] | None = None,
) -> ComponentVersion:
    """Return a component version with (reference name, component, version) references."""
    return ComponentVersion.parse_doc(
        {
            "component": {
                "name": name,
                "version": version,
                "componentReferences": [
                    {"name": ref_name, "componentName": comp_name, "version": ref_version}
                    for ref_name, comp_name, ref_version in references or []
                ],
                "resources": resources or [],
            }
        }
    )


def image(name: str, reference: str) -> dict[str, Any]:
    """Return the descriptor of a container image resource."""
    return {
        "name": name,
        "version": "v1",
        "type": "ociImage",
        "access": {"type": "ociArtifact", "imageReference": reference},
    }


def directory(name: str) -> dict[str, Any]:
    """Return the descriptor of a directory resource."""
    return {
        "name": name,
        "version": "v1",
        "type": "directoryTree",
        "access": {"type": "localBlob", "localReference": "sha256:0"},
    }


class FakeOcmClient:
    """Component repository holding component versions and directory resources."""

    def __init__(self) -> None:
        self.components: dict[tuple[str, str], ComponentVersion] = {}
        self.versions: dict[str, list[str]] = {}
        self.files: dict[tuple[str, str, str], dict[str, str]] = {}
        self.fetched: list[str] = []
        self.downloads: list[tuple[str, str, Path]] = []

    def add(
        self, cv: ComponentVersion, files: dict[str, dict[str, str]] | None = None
    ) -> ComponentVersion:
        """Add the component version and the files of its directory resources."""
        self.components[cv.identity] = cv
        self.versions.setdefault(cv.name, []).append(cv.version)
        for resource_name, content in (files or {}).items():
            self.files[(cv.name, cv.version, resource_name)] = content
        return cv

    async def get_component_version(self, location: str) -> ComponentVersion:
        loc = Location.parse(location)
        self.fetched.append(loc.component)
        if (cv := self.components.get((loc.name, loc.version))) is None:
            raise OcmException(f"component version {location} not found")
        return cv

    async def list_component_versions(self, location: str) -> list[str]:
        return list(self.versions.get(Location.parse(location).name, []))

    async def download_resource(
        self, location: str, resource_name: str, destination: Path
    ) -> None:
        loc = Location.parse(location)
        self.downloads.append((loc.component, resource_name, destination))
        if (content := self.files.get((loc.name, loc.version, resource_name))) is None:
            raise OcmException(f"resource {resource_name} of {location} not found")
        for relative, text in content.items():
            target = destination / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text)


class FakeClusterClient(ClusterClient):
    """Cluster keeping objects in memory and versioning every write."""

    def __init__(self) -> None:
        self.objects: dict[ObjectKey, dict[str, Any]] = {}
        self.updates: list[dict[str, Any]] = []
        self._version = 0

    async def get(self, key: ObjectKey) -> dict[str, Any] | None:
        if (obj := self.objects.get(key)) is None:
            return None
        return copy.deepcopy(obj)

    def _store(self, obj: dict[str, Any]) -> None:
        self._version += 1
        obj = copy.deepcopy(obj)
        obj.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        self.objects[ObjectKey.from_doc(obj)] = obj

    async def create(self, obj: dict[str, Any]) -> None:
        self._store(obj)

    async def update(self, obj: dict[str, Any]) -> None:
        self.updates.append(copy.deepcopy(obj))
        self._store(obj)


OPENMCP = "github.com/openmcp-project/openmcp"
OPENMCP_LOCATION = f"{REPOSITORY}//{OPENMCP}:v0.1.0"

FLUXCD_IMAGES = [
    "source-controller",
    "kustomize-controller",
    "helm-controller",
    "notification-controller",
    "image-reflector-controller",
    "image-automation-controller",
]


def crd(name: str, cluster: str) -> str:
    """Return a CRD manifest labelled for the cluster."""
    return (
        "apiVersion: apiextensions.k8s.io/v1\n"
        "kind: CustomResourceDefinition\n"
        "metadata:\n"
        f"  name: {name}\n"
        "  labels:\n"
        f"    openmcp.cloud/cluster: {cluster}\n"
    )


FLUXCD_TEMPLATES = {
    "templates/overlays/kustomization.yaml": (
        "resources:\n"
        "- {{ Values.fluxCDResourcesPath }}\n"
    ),
    "templates/resources/gitrepository.yaml": (
        "apiVersion: source.toolkit.fluxcd.io/v1\n"
        "kind: GitRepository\n"
        "metadata:\n"
        "  name: environments\n"
        "  namespace: flux-system\n"
        "spec:\n"
        "  url: {{ Values.git.repoUrl }}\n"
        "  ref:\n"
        "    branch: {{ Values.gitRepoEnvBranch }}\n"
    ),
    "templates/resources/kustomization.yaml": (
        "resources:\n"
        "- gitrepository.yaml\n"
        "images:\n"
        "- name: source-controller\n"
        "  newName: {{ Values.images.sourceController.image }}\n"
        "  newTag: {{ Values.images.sourceController.tag }}\n"
    ),
}

OPENMCP_TEMPLATES = {
    "templates/overlays/kustomization.yaml": (
        "resources:\n"
        "- {{ Values.openMCPResourcesPath }}\n"
    ),
    "templates/resources/kustomization.yaml": (
        "namespace: openmcp-system\n"
        "resources:\n"
        "- deployment.yaml\n"
    ),
    "templates/resources/deployment.yaml": (
        "apiVersion: apps/v1\n"
        "kind: Deployment\n"
        "metadata:\n"
        "  name: openmcp-operator\n"
        "spec:\n"
        "  template:\n"
        "    spec:\n"
        "      containers:\n"
        "      - name: operator\n"
        "        image: {{ Values.openmcpOperator.image }}:{{ Values.openmcpOperator.tag }}\n"
        "        args: [--environment={{ Values.openmcpOperator.environment }}]\n"
    ),
}


def openmcp_client() -> FakeOcmClient:
    """Component repository with an openMCP release and its providers.

    The root references the gitops templates, the operator, the Flux release
    and two providers. Only the kind cluster provider ships CRDs.
    """
    client = FakeOcmClient()
    client.add(
        component(
            OPENMCP,
            "v0.1.0",
            references=[
                ("gitops-templates", "github.com/openmcp-project/gitops-templates", "v1"),
                ("openmcp-operator", "github.com/openmcp-project/openmcp-operator", "v0.2.0"),
                ("fluxcd", "github.com/fluxcd/flux2", "v2.5.0"),
                (
                    "cluster-provider-kind",
                    "github.com/openmcp-project/cluster-provider-kind",
                    "v0.3.0",
                ),
                (
                    "service-provider-landscaper",
                    "github.com/openmcp-project/service-provider-landscaper",
                    "v0.4.0",
                ),
            ],
        )
    )
    client.add(
        component(
            "github.com/openmcp-project/gitops-templates",
            "v1",
            resources=[directory("fluxcd"), directory("openmcp")],
        ),
        files={"fluxcd": FLUXCD_TEMPLATES, "openmcp": OPENMCP_TEMPLATES},
    )
    client.add(
        component(
            "github.com/openmcp-project/openmcp-operator",
            "v0.2.0",
            resources=[
                image(
                    "openmcp-operator",
                    "ghcr.io/openmcp-project/openmcp-operator:v0.2.0",
                ),
                directory("openmcp-operator-crds"),
            ],
        ),
        files={
            "openmcp-operator-crds": {
                "clusterproviders.yaml": crd("clusterproviders", "platform"),
                "managedcontrolplanes.yaml": crd("managedcontrolplanes", "onboarding"),
            }
        },
    )
    client.add(
        component(
            "github.com/fluxcd/flux2",
            "v2.5.0",
            resources=[
                image(f"fluxcd-{name}", f"ghcr.io/fluxcd/{name}:v1.5.0")
                for name in FLUXCD_IMAGES
            ],
        )
    )
    client.add(
        component(
            "github.com/openmcp-project/cluster-provider-kind",
            "v0.3.0",
            resources=[
                image("cluster-provider-kind", "ghcr.io/openmcp-project/kind:v0.3.0"),
                directory("cluster-provider-kind-crds"),
            ],
        ),
        files={
            "cluster-provider-kind-crds": {
                "kindclusters.yaml": crd("kindclusters", "platform"),
            }
        },
    )
    client.add(
        component(
            "github.com/openmcp-project/service-provider-landscaper",
            "v0.4.0",
            resources=[
                image(
                    "service-provider-landscaper",
                    "ghcr.io/openmcp-project/landscaper:v0.4.0",
                ),
            ],
        )
    )
    return client


def remote_files(remote: Path, branch: str) -> list[str]:
    """Return the files committed on the branch of the remote."""
    return git.Repo(remote).git.ls_tree("-r", "--name-only", branch).splitlines()


def remote_commits(remote: Path, branch: str) -> int:
    """Return the number of commits on the branch of the remote."""
    return int(git.Repo(remote).git.rev_list("--count", branch))
