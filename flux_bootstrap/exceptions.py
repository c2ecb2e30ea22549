"""Exceptions related to flux-bootstrap."""

__all__ = [
    "BootstrapException",
    "InputException",
    "CommandException",
    "OcmException",
    "KustomizeException",
    "KubectlException",
    "GitException",
    "ComponentNotFoundError",
    "LocationFormatError",
    "ReferenceCycleError",
    "TemplateException",
    "PhaseError",
]


class BootstrapException(Exception):
    """Generic base exception used for this library."""


class InputException(BootstrapException):
    """Raised when the input files or values are not formatted as expected."""


class CommandException(BootstrapException):
    """Raised when there is a failure running a subcommand."""


class OcmException(CommandException):
    """Raised when there is a failure running an ocm command."""


class KustomizeException(CommandException):
    """Raised when there is a failure running a kustomize command."""


class KubectlException(CommandException):
    """Raised when there is a failure running a kubectl command."""


class GitException(BootstrapException):
    """Raised when a git operation on the deployment repository fails."""


class LocationFormatError(InputException):
    """Raised when a component location is not `<repo>//<component>:<version>`."""


class ComponentNotFoundError(BootstrapException):
    """Raised when a reference or resource is not reachable from a component."""

    def __init__(
        self, kind: str, name: str, component: str, recursive: bool = True
    ) -> None:
        message = f"{kind} {name} not found in component version {component}"
        if recursive:
            message += " or its references"
        super().__init__(message)
        self.kind = kind
        self.name = name
        self.component = component


class ReferenceCycleError(BootstrapException):
    """Raised when the component reference graph contains a cycle."""

    def __init__(self, path: list[str]) -> None:
        super().__init__(f"Component reference cycle detected: {' -> '.join(path)}")
        self.path = path


class TemplateException(BootstrapException):
    """Base class for errors while rendering templates."""


class PhaseError(BootstrapException):
    """Raised when a phase of the deployment repository pipeline fails."""

    def __init__(self, phase: str, cause: Exception) -> None:
        super().__init__(f"failed to {phase}: {cause}")
        self.phase = phase
        self.cause = cause
