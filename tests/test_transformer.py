"""Tests for arranging the template resources of an environment."""

from pathlib import Path

import pytest
import yaml

from flux_bootstrap.exceptions import ComponentNotFoundError
from flux_bootstrap.resolver import ComponentResolver
from flux_bootstrap.transformer import TemplateTransformer

from .fakes import OPENMCP_LOCATION, openmcp_client


@pytest.fixture(name="resolver")
async def resolver_fixture() -> ComponentResolver:
    resolver = ComponentResolver(
        OPENMCP_LOCATION, "gitops-templates/fluxcd", openmcp_client()
    )
    await resolver.initialize()
    return resolver


def tree(root: Path) -> list[str]:
    return sorted(
        str(path.relative_to(root)) for path in root.rglob("*") if path.is_file()
    )


async def test_transform(resolver: ComponentResolver, tmp_path: Path) -> None:
    """Test the layout of the templates tree."""
    target = tmp_path / "templates"
    transformer = TemplateTransformer(
        resolver,
        "gitops-templates/fluxcd",
        "gitops-templates/openmcp",
        tmp_path / "work",
    )
    await transformer.transform("dev", target)

    assert tree(target) == [
        "envs/dev/fluxcd/kustomization.yaml",
        "envs/dev/kustomization.yaml",
        "envs/dev/openmcp/kustomization.yaml",
        "envs/dev/root-kustomization.yaml",
        "resources/fluxcd/gitrepository.yaml",
        "resources/fluxcd/kustomization.yaml",
        "resources/kustomization.yaml",
        "resources/openmcp/deployment.yaml",
        "resources/openmcp/kustomization.yaml",
        "resources/root-kustomization.yaml",
    ]
    # Templates are copied without rendering
    assert "{{ Values.fluxCDResourcesPath }}" in (
        target / "envs/dev/fluxcd/kustomization.yaml"
    ).read_text()

    env = yaml.safe_load((target / "envs/dev/kustomization.yaml").read_text())
    assert env["resources"] == ["../../resources", "openmcp"]
    assert env["patches"] == [{"path": "root-kustomization.yaml"}]

    patch = yaml.safe_load((target / "envs/dev/root-kustomization.yaml").read_text())
    assert patch["metadata"] == {"name": "bootstrap", "namespace": "default"}
    assert patch["spec"] == {"path": "./envs/dev"}

    resources = yaml.safe_load((target / "resources/kustomization.yaml").read_text())
    assert resources["resources"] == ["root-kustomization.yaml"]

    root = yaml.safe_load((target / "resources/root-kustomization.yaml").read_text())
    assert root["apiVersion"] == "kustomize.toolkit.fluxcd.io/v1"
    assert root["spec"]["sourceRef"] == {
        "kind": "GitRepository",
        "name": "environments",
        "namespace": "flux-system",
    }
    assert root["spec"]["dependsOn"] == [
        {"name": "flux-system", "namespace": "flux-system"}
    ]


async def test_transform_replaces_target(
    resolver: ComponentResolver, tmp_path: Path
) -> None:
    """Test files of a previous transformation are removed."""
    target = tmp_path / "templates"
    (target / "envs" / "prod").mkdir(parents=True)
    (target / "envs" / "prod" / "kustomization.yaml").write_text("resources: []\n")
    transformer = TemplateTransformer(
        resolver,
        "gitops-templates/fluxcd",
        "gitops-templates/openmcp",
        tmp_path / "work",
    )
    await transformer.transform("dev", target)
    assert not (target / "envs" / "prod").exists()


async def test_transform_missing_templates(
    resolver: ComponentResolver, tmp_path: Path
) -> None:
    """Test a template path that does not resolve."""
    transformer = TemplateTransformer(
        resolver,
        "gitops-templates/fluxcd",
        "openmcp-templates/openmcp",
        tmp_path / "work",
    )
    with pytest.raises(ComponentNotFoundError, match="openmcp-templates"):
        await transformer.transform("dev", tmp_path / "templates")
