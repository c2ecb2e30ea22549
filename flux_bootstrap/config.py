"""Configuration objects for flux-bootstrap.

The bootstrap configuration is a YAML document:

    component:
      location: ghcr.io/openmcp-project//github.com/openmcp-project/openmcp:v0.1.0
    repository:
      url: https://github.com/example/deployment.git
      branch: main
    environment: dev
    providers:
      clusterProviders:
      - name: kind
        config: {}
    imagePullSecrets: [pull-secret]
    openmcpOperator:
      config:
        managedControlPlane: {}
    templateInput: {}

All problems found while validating the document are reported together, each
prefixed with the path of the offending field.
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml

from .exceptions import InputException

__all__ = [
    "BootstrapConfig",
    "ComponentConfig",
    "OpaqueConfig",
    "Provider",
    "ProviderKind",
    "RepositoryConfig",
    "read_config",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_FLUXCD_TEMPLATES = "gitops-templates/fluxcd"
DEFAULT_OPENMCP_TEMPLATES = "gitops-templates/openmcp"


@dataclass(frozen=True)
class OpaqueConfig:
    """Configuration whose schema is owned by someone else.

    The payload is kept exactly as given and decoded once into a mapping when
    the configuration is validated.
    """

    raw: str
    """The payload as YAML text."""

    value: dict[str, Any]
    """The decoded payload."""

    @classmethod
    def parse(cls, payload: Any) -> "OpaqueConfig":
        """Decode a payload given inline or as YAML text."""
        if isinstance(payload, str):
            raw = payload
            try:
                value = yaml.safe_load(payload)
            except yaml.YAMLError as err:
                raise InputException(f"not valid yaml: {err}") from err
        else:
            raw = yaml.dump(payload, sort_keys=False)
            value = payload
        if value is None:
            value = {}
        if not isinstance(value, dict):
            raise InputException(
                f"expected a mapping but found {type(value).__name__}"
            )
        return cls(raw=raw, value=value)


@dataclass(frozen=True)
class ComponentConfig:
    """Location of the root component and the template resources within it."""

    location: str
    """The root component as `<repository>//<component>:<version>`."""

    fluxcd_template_resource_path: str = DEFAULT_FLUXCD_TEMPLATES
    openmcp_operator_template_resource_path: str = DEFAULT_OPENMCP_TEMPLATES


@dataclass(frozen=True)
class RepositoryConfig:
    """The deployment repository."""

    url: str
    branch: str


class ProviderKind:
    """Kinds of providers and the naming of their components and directories."""

    CLUSTER = "clusterProviders"
    SERVICE = "serviceProviders"
    PLATFORM = "platformServices"

    ALL = (CLUSTER, SERVICE, PLATFORM)

    COMPONENT_PREFIX = {
        CLUSTER: "cluster-provider-",
        SERVICE: "service-provider-",
        PLATFORM: "platform-service-",
    }

    DIRECTORY = {
        CLUSTER: "cluster-providers",
        SERVICE: "service-providers",
        PLATFORM: "platform-services",
    }


@dataclass(frozen=True)
class Provider:
    """A provider to deploy with its provider specific configuration."""

    kind: str
    """One of the ProviderKind values."""

    name: str

    config: OpaqueConfig | None = None

    @property
    def component_name(self) -> str:
        """Name of the reference to the component of the provider."""
        return f"{ProviderKind.COMPONENT_PREFIX[self.kind]}{self.name}"

    @property
    def directory(self) -> str:
        """Directory below resources/openmcp holding the provider manifest."""
        return ProviderKind.DIRECTORY[self.kind]

    @property
    def manifest_path(self) -> str:
        """Path of the provider manifest relative to resources/openmcp."""
        return f"{self.directory}/{self.name}.yaml"


class _Errors:
    """Collects validation errors with the path of the field."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def required(self, path: str, detail: str) -> None:
        self.errors.append(f"{path}: Required value: {detail}")

    def invalid(self, path: str, detail: str) -> None:
        self.errors.append(f"{path}: Invalid value: {detail}")


def _section(doc: dict[str, Any], key: str, errors: _Errors) -> dict[str, Any]:
    value = doc.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        errors.invalid(key, "expected a mapping")
        return {}
    return value


def _parse_opaque(payload: Any, path: str, errors: _Errors) -> OpaqueConfig | None:
    try:
        return OpaqueConfig.parse(payload)
    except InputException as err:
        errors.invalid(path, str(err))
        return None


@dataclass(frozen=True)
class BootstrapConfig:
    """Configuration of a deployment repository bootstrap."""

    component: ComponentConfig
    repository: RepositoryConfig
    environment: str
    operator_config: OpaqueConfig
    providers: list[Provider] = field(default_factory=list)
    image_pull_secrets: list[str] = field(default_factory=list)
    template_input: dict[str, Any] = field(default_factory=dict)

    def providers_of(self, kind: str) -> list[Provider]:
        """Return the configured providers of one kind, in configuration order."""
        return [provider for provider in self.providers if provider.kind == kind]

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "BootstrapConfig":
        """Parse and validate a configuration document."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid configuration, expected a mapping: {doc}")
        errors = _Errors()

        environment = doc.get("environment") or ""
        if not environment:
            errors.required("environment", "environment is required")

        component = _section(doc, "component", errors)
        if not (location := component.get("location")):
            errors.required("component.location", "component location is required")

        repository = _section(doc, "repository", errors)
        if not (url := repository.get("url")):
            errors.required("repository.url", "repository url is required")
        if not (branch := repository.get("branch")):
            errors.required("repository.branch", "repository branch is required")

        operator = _section(doc, "openmcpOperator", errors)
        operator_config: OpaqueConfig | None = None
        if operator.get("config") is None:
            errors.required(
                "openmcpOperator.config", "openmcp operator config is required"
            )
        else:
            operator_config = _parse_opaque(
                operator["config"], "openmcpOperator.config", errors
            )

        providers: list[Provider] = []
        provider_section = _section(doc, "providers", errors)
        for kind in ProviderKind.ALL:
            entries = provider_section.get(kind) or []
            if not isinstance(entries, list):
                errors.invalid(f"providers.{kind}", "expected a list")
                continue
            for index, entry in enumerate(entries):
                path = f"providers.{kind}[{index}]"
                if isinstance(entry, str):
                    entry = {"name": entry}
                if not isinstance(entry, dict) or not entry.get("name"):
                    errors.required(f"{path}.name", "provider name is required")
                    continue
                config = None
                if entry.get("config") is not None:
                    config = _parse_opaque(entry["config"], f"{path}.config", errors)
                providers.append(Provider(kind=kind, name=entry["name"], config=config))

        image_pull_secrets = doc.get("imagePullSecrets") or []
        if not isinstance(image_pull_secrets, list) or not all(
            isinstance(secret, str) for secret in image_pull_secrets
        ):
            errors.invalid("imagePullSecrets", "expected a list of secret names")
            image_pull_secrets = []

        template_input = doc.get("templateInput") or {}
        if not isinstance(template_input, dict):
            errors.invalid("templateInput", "expected a mapping")

        if errors.errors or operator_config is None:
            raise InputException(
                "Invalid configuration: " + "; ".join(errors.errors)
            )
        return cls(
            component=ComponentConfig(
                location=location,
                fluxcd_template_resource_path=component.get(
                    "fluxcdTemplateResourcePath"
                )
                or DEFAULT_FLUXCD_TEMPLATES,
                openmcp_operator_template_resource_path=component.get(
                    "openmcpOperatorTemplateResourcePath"
                )
                or DEFAULT_OPENMCP_TEMPLATES,
            ),
            repository=RepositoryConfig(url=url, branch=branch),
            environment=environment,
            operator_config=operator_config,
            providers=providers,
            image_pull_secrets=image_pull_secrets,
            template_input=template_input,
        )

    @classmethod
    def parse_yaml(cls, content: str) -> "BootstrapConfig":
        """Parse a configuration from YAML text."""
        try:
            doc = yaml.safe_load(content)
        except yaml.YAMLError as err:
            raise InputException(f"Unable to parse configuration: {err}") from err
        return cls.parse_doc(doc)


async def read_config(path: Path) -> BootstrapConfig:
    """Read and validate the configuration file."""
    _LOGGER.debug("Reading configuration %s", path)
    try:
        async with aiofiles.open(path) as config_file:
            content = await config_file.read()
    except OSError as err:
        raise InputException(f"Unable to read configuration {path}: {err}") from err
    return BootstrapConfig.parse_yaml(content)
