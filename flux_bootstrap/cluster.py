"""Library for reconciling objects with a Kubernetes cluster.

Objects are reconciled one at a time by group, version, kind, namespace and
name: an object that does not exist is created, otherwise the version of the
existing object is carried over and the object is replaced.
"""

from abc import ABC, abstractmethod
import copy
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any

from . import command
from .command import Command
from .exceptions import InputException, KubectlException

__all__ = [
    "ObjectKey",
    "ClusterClient",
    "KubectlClient",
    "create_or_update",
    "apply_objects",
]

_LOGGER = logging.getLogger(__name__)

KUBECTL_BIN = "kubectl"


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Identifier for an object in the cluster."""

    api_version: str
    kind: str
    namespace: str | None
    name: str

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "ObjectKey":
        """Return the key of a raw kubernetes object."""
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        metadata = doc.get("metadata") or {}
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        return cls(
            api_version=api_version,
            kind=kind,
            namespace=metadata.get("namespace"),
            name=name,
        )

    @property
    def resource_type(self) -> str:
        """The fully qualified type as understood by kubectl (Kind.version.group)."""
        group, sep, version = self.api_version.rpartition("/")
        if not sep:
            return self.kind
        return f"{self.kind}.{version}.{group}"

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


class ClusterClient(ABC):
    """Minimal read and write access to a cluster."""

    @abstractmethod
    async def get(self, key: ObjectKey) -> dict[str, Any] | None:
        """Return the object or None when it does not exist."""

    @abstractmethod
    async def create(self, obj: dict[str, Any]) -> None:
        """Create the object."""

    @abstractmethod
    async def update(self, obj: dict[str, Any]) -> None:
        """Replace the existing object."""


class KubectlClient(ClusterClient):
    """Cluster client using the kubectl command line tool."""

    def __init__(self, kubeconfig: Path | None = None) -> None:
        """Initialize KubectlClient, using the default kubeconfig if not set."""
        self._kubeconfig = kubeconfig

    def _command(self, args: list[str]) -> Command:
        cmd = [KUBECTL_BIN]
        if self._kubeconfig:
            cmd.extend(["--kubeconfig", str(self._kubeconfig)])
        return Command(cmd + args, exc=KubectlException)

    async def get(self, key: ObjectKey) -> dict[str, Any] | None:
        args = ["get", key.resource_type, key.name, "-o", "json", "--ignore-not-found"]
        if key.namespace:
            args.extend(["-n", key.namespace])
        out = await command.run(self._command(args))
        if not out.strip():
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError as err:
            raise KubectlException(f"Unable to parse object {key}: {err}") from err

    async def create(self, obj: dict[str, Any]) -> None:
        await command.run(
            self._command(["create", "-f", "-"]), json.dumps(obj).encode("utf-8")
        )

    async def update(self, obj: dict[str, Any]) -> None:
        await command.run(
            self._command(["replace", "-f", "-"]), json.dumps(obj).encode("utf-8")
        )


async def create_or_update(client: ClusterClient, obj: dict[str, Any]) -> None:
    """Create the object or update it, carrying over the resource version."""
    key = ObjectKey.from_doc(obj)
    if (existing := await client.get(key)) is None:
        _LOGGER.debug("Creating %s", key)
        await client.create(obj)
        return
    obj = copy.deepcopy(obj)
    obj.setdefault("metadata", {})
    if version := (existing.get("metadata") or {}).get("resourceVersion"):
        obj["metadata"]["resourceVersion"] = version
    _LOGGER.debug("Updating %s", key)
    await client.update(obj)


async def apply_objects(client: ClusterClient, objects: list[dict[str, Any]]) -> None:
    """Reconcile each object in order, stopping at the first failure."""
    for obj in objects:
        key = ObjectKey.from_doc(obj)
        _LOGGER.info("Applying %s", key)
        await create_or_update(client, obj)
