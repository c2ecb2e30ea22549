"""Tests for kustomization documents."""

from pathlib import Path

import pytest
import yaml

from flux_bootstrap.exceptions import InputException
from flux_bootstrap.kustomization import (
    FluxKustomization,
    KubernetesKustomization,
    KustomizePatch,
    flux_kustomization_patch,
    is_flux_kustomization,
    read_kustomization,
    write_yaml,
)

KUSTOMIZATION = """\
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
namespace: openmcp-system
resources:
- namespace.yaml
- operator.yaml
images:
- name: operator
  newName: ghcr.io/openmcp/operator
  newTag: v0.2.0
patches:
- path: patch.yaml
- patch: |
    - op: remove
      path: /spec
  target:
    kind: Deployment
"""


async def test_read_and_write_preserves_unknown_keys(tmp_path: Path) -> None:
    """Test rewriting a kustomization keeps keys it does not model."""
    path = tmp_path / "kustomization.yaml"
    path.write_text(KUSTOMIZATION)
    kustomization = await read_kustomization(path)
    assert kustomization.resources == ["namespace.yaml", "operator.yaml"]
    assert kustomization.images[0].new_tag == "v0.2.0"
    assert kustomization.patches[0] == KustomizePatch(path="patch.yaml")
    assert kustomization.patches[1].target == {"kind": "Deployment"}

    await write_yaml(path, kustomization.to_doc())
    assert yaml.safe_load(path.read_text()) == yaml.safe_load(KUSTOMIZATION)


def test_add_resources_appends_duplicates() -> None:
    """Test resources appended twice are listed twice."""
    kustomization = KubernetesKustomization.parse_doc(yaml.safe_load(KUSTOMIZATION))
    kustomization.add_resources(["crds/crd.yaml", "extra/cm.yaml"])
    kustomization.add_resources(["crds/crd.yaml"])
    assert kustomization.resources == [
        "namespace.yaml",
        "operator.yaml",
        "crds/crd.yaml",
        "extra/cm.yaml",
        "crds/crd.yaml",
    ]


def test_empty_kustomization() -> None:
    """Test empty lists are omitted from the document."""
    doc = KubernetesKustomization.parse_doc(None).to_doc()
    assert doc == {
        "apiVersion": "kustomize.config.k8s.io/v1beta1",
        "kind": "Kustomization",
    }


@pytest.mark.parametrize(
    "doc",
    [
        ["resources"],
        {"resources": "a.yaml"},
        {"resources": [1]},
        {"images": [{"newName": "x"}]},
    ],
)
def test_invalid_kustomization(doc: object) -> None:
    """Test documents that are rejected."""
    with pytest.raises(InputException):
        KubernetesKustomization.parse_doc(doc)  # type: ignore[arg-type]


def test_flux_kustomization() -> None:
    """Test the Flux Kustomization document."""
    doc = FluxKustomization(
        name="bootstrap",
        namespace="default",
        path="./envs/dev",
        source_name="environments",
        depends_on=[("flux-system", "flux-system")],
    ).to_doc()
    assert doc == {
        "apiVersion": "kustomize.toolkit.fluxcd.io/v1",
        "kind": "Kustomization",
        "metadata": {"name": "bootstrap", "namespace": "default"},
        "spec": {
            "interval": "10m",
            "path": "./envs/dev",
            "prune": True,
            "sourceRef": {
                "kind": "GitRepository",
                "name": "environments",
                "namespace": "flux-system",
            },
            "dependsOn": [{"name": "flux-system", "namespace": "flux-system"}],
        },
    }
    assert is_flux_kustomization(doc)


def test_flux_kustomization_patch() -> None:
    """Test the patch changing the path of a Flux Kustomization."""
    patch = flux_kustomization_patch("bootstrap", "default", "./envs/dev")
    assert patch["spec"] == {"path": "./envs/dev"}
    assert is_flux_kustomization(patch)


@pytest.mark.parametrize(
    "doc",
    [
        {"apiVersion": "kustomize.config.k8s.io/v1beta1", "kind": "Kustomization"},
        {"apiVersion": "v1", "kind": "ConfigMap"},
        {"kind": "Kustomization"},
    ],
)
def test_not_flux_kustomization(doc: dict) -> None:
    """Test documents that are not Flux Kustomizations."""
    assert not is_flux_kustomization(doc)
