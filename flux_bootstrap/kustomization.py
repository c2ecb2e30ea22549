"""Kustomization documents written to the deployment repository.

Two kinds of documents share the `Kustomization` kind:

- the kustomize build file `kustomization.yaml` (`kustomize.config.k8s.io`)
  listing resources, images and patches of a directory, and
- the Flux `Kustomization` (`kustomize.toolkit.fluxcd.io`) telling the sync
  controller which path of the repository to reconcile.
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import InputException

__all__ = [
    "KubernetesKustomization",
    "KustomizeImage",
    "KustomizePatch",
    "FluxKustomization",
    "flux_kustomization_patch",
    "read_kustomization",
    "write_yaml",
]

_LOGGER = logging.getLogger(__name__)

KUSTOMIZE_API_VERSION = "kustomize.config.k8s.io/v1beta1"
FLUX_KUSTOMIZE_API_VERSION = "kustomize.toolkit.fluxcd.io/v1"
FLUXTOMIZE_DOMAIN = "kustomize.toolkit.fluxcd.io"
KUSTOMIZE_KIND = "Kustomization"
DEFAULT_NAMESPACE = "flux-system"
GIT_REPOSITORY = "GitRepository"


@dataclass
class _BaseDocument(DataClassDictMixin):
    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class KustomizeImage(_BaseDocument):
    """Image override of a kustomize build."""

    name: str
    new_name: str | None = field(metadata=field_options(alias="newName"), default=None)
    new_tag: str | None = field(metadata=field_options(alias="newTag"), default=None)
    digest: str | None = None


@dataclass
class KustomizePatch(_BaseDocument):
    """Patch applied by a kustomize build, from a file or inline."""

    path: str | None = None
    patch: str | None = None
    target: dict[str, Any] | None = None


@dataclass
class KubernetesKustomization:
    """A kustomize `kustomization.yaml` document.

    Keys other than resources, images and patches are preserved as they were
    read so that rewriting the file does not lose them.
    """

    resources: list[str] = field(default_factory=list)
    images: list[KustomizeImage] = field(default_factory=list)
    patches: list[KustomizePatch] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any] | None) -> "KubernetesKustomization":
        """Parse a kustomization document."""
        if doc is None:
            doc = {}
        if not isinstance(doc, dict):
            raise InputException(f"Invalid kustomization document: {doc}")
        doc = dict(doc)
        resources = doc.pop("resources", None) or []
        images = doc.pop("images", None) or []
        patches = doc.pop("patches", None) or []
        if not isinstance(resources, list) or not all(
            isinstance(resource, str) for resource in resources
        ):
            raise InputException(f"Invalid kustomization resources: {resources}")
        try:
            return cls(
                resources=resources,
                images=[KustomizeImage.from_dict(image) for image in images],
                patches=[KustomizePatch.from_dict(patch) for patch in patches],
                extra=doc,
            )
        except (MissingField, InvalidFieldValue, TypeError) as err:
            raise InputException(f"Invalid kustomization document: {err}") from err

    def to_doc(self) -> dict[str, Any]:
        """Return the document, omitting empty lists."""
        doc: dict[str, Any] = {
            "apiVersion": KUSTOMIZE_API_VERSION,
            "kind": KUSTOMIZE_KIND,
        }
        doc.update(self.extra)
        if self.resources:
            doc["resources"] = list(self.resources)
        if self.images:
            doc["images"] = [image.to_dict() for image in self.images]
        if self.patches:
            doc["patches"] = [patch.to_dict() for patch in self.patches]
        return doc

    def add_resources(self, resources: list[str]) -> None:
        """Append resources.

        Entries already present are appended again. The document is expected
        to come from a freshly rendered template on every run.
        """
        self.resources.extend(resources)


@dataclass
class FluxKustomization:
    """A Flux Kustomization reconciling a path of a source repository."""

    name: str
    namespace: str
    path: str
    source_name: str
    source_namespace: str = DEFAULT_NAMESPACE
    source_kind: str = GIT_REPOSITORY
    interval: str = "10m"
    prune: bool = True
    depends_on: list[tuple[str, str]] = field(default_factory=list)
    """(namespace, name) of Kustomizations that must be ready first."""

    def to_doc(self) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "interval": self.interval,
            "path": self.path,
            "prune": self.prune,
            "sourceRef": {
                "kind": self.source_kind,
                "name": self.source_name,
                "namespace": self.source_namespace,
            },
        }
        if self.depends_on:
            spec["dependsOn"] = [
                {"name": name, "namespace": namespace}
                for namespace, name in self.depends_on
            ]
        return {
            "apiVersion": FLUX_KUSTOMIZE_API_VERSION,
            "kind": KUSTOMIZE_KIND,
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": spec,
        }


def flux_kustomization_patch(name: str, namespace: str, path: str) -> dict[str, Any]:
    """Return a patch that changes the path of a Flux Kustomization."""
    return {
        "apiVersion": FLUX_KUSTOMIZE_API_VERSION,
        "kind": KUSTOMIZE_KIND,
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"path": path},
    }


def is_flux_kustomization(doc: dict[str, Any]) -> bool:
    """Return true if the object is a Flux Kustomization."""
    return doc.get("kind") == KUSTOMIZE_KIND and FLUXTOMIZE_DOMAIN in (
        doc.get("apiVersion") or ""
    )


async def read_kustomization(path: Path) -> KubernetesKustomization:
    """Read a kustomization.yaml file."""
    async with aiofiles.open(path) as kustomization_file:
        content = await kustomization_file.read()
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse kustomization {path}: {err}") from err
    return KubernetesKustomization.parse_doc(doc)


async def write_yaml(path: Path, doc: dict[str, Any]) -> None:
    """Write a document as YAML, replacing the file."""
    content = yaml.dump(doc, sort_keys=False)
    _LOGGER.debug("Writing %s", path)
    async with aiofiles.open(path, mode="w") as out:
        await out.write(content)
