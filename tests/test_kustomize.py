"""Tests for kustomize library."""

import os
from pathlib import Path

import pytest

from flux_bootstrap import command, exceptions, kustomize

BUILD_OUTPUT = """\
apiVersion: v1
kind: Namespace
metadata:
  name: openmcp-system
---
apiVersion: kustomize.toolkit.fluxcd.io/v1
kind: Kustomization
metadata:
  name: bootstrap
  namespace: default
spec:
  path: ./envs/dev
---
"""

INVALID_YAML = """
---
foo: !bar
"""


class FakeTask(command.Task):
    """Task returning a fixed output."""

    def __init__(self, output: str) -> None:
        self._output = output

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Execute the task and return the result."""
        return self._output.encode()


async def test_objects() -> None:
    """Test loading yaml documents."""
    result = await kustomize.Kustomize(FakeTask(BUILD_OUTPUT)).objects()
    assert [doc["kind"] for doc in result] == ["Namespace", "Kustomization"]


async def test_flux_kustomizations() -> None:
    """Test selecting the Flux Kustomizations of a build."""
    result = await kustomize.Kustomize(FakeTask(BUILD_OUTPUT)).flux_kustomizations()
    assert [doc["metadata"]["name"] for doc in result] == ["bootstrap"]


async def test_objects_failure() -> None:
    """Test output that is not valid yaml."""
    cmd = kustomize.Kustomize(FakeTask(INVALID_YAML))
    with pytest.raises(
        exceptions.KustomizeException,
        match=r"Unable to parse.*could not determine a constructor",
    ):
        await cmd.objects()


async def test_build_not_a_directory(tmp_path: Path) -> None:
    """Test building a path that does not exist."""
    with pytest.raises(exceptions.KustomizeException, match="not a directory"):
        await kustomize.build(tmp_path / "missing").objects()


FAKE_KUSTOMIZE = """\
#!/bin/sh
if [ "$1" != "build" ] || [ "$2" != "{path}" ]; then
  echo "unexpected arguments $@" >&2
  exit 1
fi
cat "{output}"
"""


async def test_build(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test building a directory with the kustomize binary."""
    overlay = tmp_path / "envs" / "dev"
    overlay.mkdir(parents=True)
    output = tmp_path / "output.yaml"
    output.write_text(BUILD_OUTPUT)
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "kustomize"
    script.write_text(FAKE_KUSTOMIZE.format(path=overlay, output=output))
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ['PATH']}")

    result = await kustomize.build(overlay).objects()
    assert len(result) == 2

    with pytest.raises(exceptions.KustomizeException, match="unexpected arguments"):
        await kustomize.build(tmp_path).objects()
