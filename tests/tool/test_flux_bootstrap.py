"""Tests for the flux-bootstrap command line tool."""

from pathlib import Path

import pytest

from flux_bootstrap import deployment_repo
from flux_bootstrap.tool.flux_bootstrap import _make_parser

from . import run_main
from ..fakes import OPENMCP_LOCATION, openmcp_client, remote_files

CONFIG = """\
component:
  location: {location}
repository:
  url: {url}
  branch: dev
environment: dev
openmcpOperator:
  config: {{}}
"""


def test_parser_defaults() -> None:
    """Test the defaults of the manage-deployment-repo command."""
    args = _make_parser().parse_args(
        ["manage-deployment-repo", "config.yaml", "--git-config", "git.yaml"]
    )
    assert args.config == Path("config.yaml")
    assert args.git_config == Path("git.yaml")
    assert args.ocm_config is None
    assert args.push
    assert args.apply
    assert not args.print_manifests


def test_parser_flags() -> None:
    """Test disabling push and apply."""
    args = _make_parser().parse_args(
        [
            "manage-deployment-repo",
            "config.yaml",
            "--git-config=git.yaml",
            "--no-push",
            "--no-apply",
            "--print-manifests",
            "--extra-manifest-dir=extra",
        ]
    )
    assert not args.push
    assert not args.apply
    assert args.print_manifests
    assert args.extra_manifest_dir == Path("extra")


def test_git_config_required(capsys: pytest.CaptureFixture[str]) -> None:
    """Test the credentials are required."""
    assert run_main(["manage-deployment-repo", "config.yaml"]) == 2
    assert "--git-config" in capsys.readouterr().err


def test_invalid_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test an invalid configuration is reported without a traceback."""
    config = tmp_path / "config.yaml"
    config.write_text("environment: dev\n")
    code = run_main(
        [
            "manage-deployment-repo",
            str(config),
            "--git-config",
            str(tmp_path / "git.yaml"),
        ]
    )
    assert code == 1
    err = capsys.readouterr().err
    assert "flux-bootstrap error:" in err
    assert "component.location: Required value" in err
    assert "Traceback" not in err


def test_manage_deployment_repo(
    tmp_path: Path,
    remote: Path,
    git_config_file: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test a run of the command pushing to the deployment repository."""
    monkeypatch.setattr(
        deployment_repo, "OcmClient", lambda ocm_config=None: openmcp_client()
    )
    config = tmp_path / "config.yaml"
    config.write_text(CONFIG.format(location=OPENMCP_LOCATION, url=remote))
    code = run_main(
        [
            "manage-deployment-repo",
            str(config),
            "--git-config",
            str(git_config_file),
            "--no-apply",
        ]
    )
    assert code == 0
    assert "resources/openmcp/kustomization.yaml" in remote_files(remote, "dev")
